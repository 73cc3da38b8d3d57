from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

from agent_teams_monitor.json_files import write_json
from agent_teams_monitor.replay.frames import (
    FRAMES_DIR_NAME,
    MANIFEST_FILE_NAME,
    Frame,
    Manifest,
    build_frame,
    frame_file_name,
)
from agent_teams_monitor.state.events import TeamRemoved, TeamStateEvent
from agent_teams_monitor.state.team_state import TeamStateManager


@dataclass
class TeamRecording:
    team_name: str
    output_dir: Path
    frames_dir: Path
    started_at: datetime
    start_monotonic: float
    frame_count: int = 0
    last_hash: str = ""


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AutoRecorder:
    """Records one frame sequence per live team, deduplicated by content hash."""

    def __init__(
        self,
        state: TeamStateManager,
        output_dir: str | Path,
        *,
        capture_debounce_ms: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._state = state
        self._output_dir = Path(output_dir)
        self._capture_debounce_seconds = max(0.0, capture_debounce_ms / 1000)
        self._clock = clock
        self._recordings: dict[str, TeamRecording] = {}
        self._completed: dict[str, Path] = {}
        self._debounce_timers: dict[str, asyncio.TimerHandle] = {}
        self._finished_listeners: list[Callable[[str, Path], None]] = []
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._state.subscribe(self._on_state_change)

    def on_recording_finished(self, listener: Callable[[str, Path], None]) -> None:
        self._finished_listeners.append(listener)

    def _on_state_change(self, event: TeamStateEvent) -> None:
        name = event.team_name
        if not name:
            return
        if isinstance(event, TeamRemoved):
            self.stop_recording(name)
            return
        if event.type == "replay_state_changed" or self._state.is_team_replaying(name):
            return
        if name not in self._recordings:
            if self._state.get_team(name) is not None:
                self.start_recording(name)
            return
        self.capture_frame(name)

    # --- Recording lifecycle ---

    def start_recording(self, team_name: str) -> Path | None:
        if team_name in self._recordings:
            return self._recordings[team_name].output_dir
        now = datetime.now(UTC)
        base_name = f"{now:%Y-%m-%d}_{team_name}_{now:%H%M%S}"
        output_dir = self._output_dir / base_name
        suffix = 2
        while output_dir.exists():
            output_dir = self._output_dir / f"{base_name}_{suffix}"
            suffix += 1
        frames_dir = output_dir / FRAMES_DIR_NAME
        try:
            frames_dir.mkdir(parents=True, exist_ok=True)
        except OSError as ex:
            logger.warning(f"Cannot create recording directory {output_dir}: {ex}")
            return None

        self._recordings[team_name] = TeamRecording(
            team_name=team_name,
            output_dir=output_dir,
            frames_dir=frames_dir,
            started_at=now,
            start_monotonic=self._clock(),
        )
        logger.info(f"Recording team {team_name!r} to {output_dir}")
        self.capture_now(team_name)
        return output_dir

    def capture_frame(self, team_name: str) -> None:
        """Schedule a debounced capture; bursts of changes collapse into one frame."""
        if team_name not in self._recordings:
            return
        existing = self._debounce_timers.pop(team_name, None)
        if existing is not None:
            existing.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.capture_now(team_name)
            return
        self._debounce_timers[team_name] = loop.call_later(
            self._capture_debounce_seconds, self._fire_capture, team_name
        )

    def _fire_capture(self, team_name: str) -> None:
        self._debounce_timers.pop(team_name, None)
        self.capture_now(team_name)

    def capture_now(self, team_name: str) -> Frame | None:
        """Capture immediately. Returns the stored frame, or None if it was a duplicate."""
        recording = self._recordings.get(team_name)
        if recording is None:
            return None

        frame = build_frame(self._state, team_name)
        frame_hash = frame.content_hash()
        if frame_hash == recording.last_hash:
            return None

        frame.elapsed_ms = int((self._clock() - recording.start_monotonic) * 1000)
        index = recording.frame_count + 1
        try:
            write_json(recording.frames_dir / frame_file_name(index), frame.to_dict())
        except OSError as ex:
            logger.warning(f"Dropped frame {index} for {team_name!r}: {ex}")
            return None

        recording.last_hash = frame_hash
        recording.frame_count = index
        # Rewritten after every frame so an abrupt exit leaves a valid recording.
        self._write_manifest(recording)
        return frame

    def stop_recording(self, team_name: str) -> Manifest | None:
        recording = self._recordings.get(team_name)
        if recording is None:
            return None

        pending = self._debounce_timers.pop(team_name, None)
        if pending is not None:
            pending.cancel()
        self.capture_now(team_name)

        manifest = self._write_manifest(recording)
        self._completed[team_name] = recording.output_dir
        del self._recordings[team_name]
        logger.info(f"Stopped recording {team_name!r} ({recording.frame_count} frames)")
        for listener in list(self._finished_listeners):
            try:
                listener(team_name, recording.output_dir)
            except Exception as ex:
                logger.warning(f"Recording listener failed for {team_name!r}: {ex}")
        return manifest

    def _write_manifest(self, recording: TeamRecording) -> Manifest:
        manifest = Manifest(
            name=recording.team_name,
            started_at=_iso(recording.started_at),
            ended_at=_iso(datetime.now(UTC)),
            frame_count=recording.frame_count,
            team_names=[recording.team_name],
        )
        try:
            write_json(recording.output_dir / MANIFEST_FILE_NAME, manifest.to_dict())
        except OSError as ex:
            logger.warning(f"Failed to write manifest for {recording.team_name!r}: {ex}")
        return manifest

    # --- Queries ---

    def get_recording_dir(self, team_name: str) -> Path | None:
        recording = self._recordings.get(team_name)
        if recording is not None:
            return recording.output_dir
        return self._completed.get(team_name)

    def get_frame_count(self, team_name: str) -> int:
        recording = self._recordings.get(team_name)
        if recording is not None:
            return recording.frame_count
        completed = self._completed.get(team_name)
        if completed is None:
            return 0
        return len(list((completed / FRAMES_DIR_NAME).glob("*.json")))

    def is_recording(self, team_name: str) -> bool:
        return team_name in self._recordings

    def dispose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for handle in self._debounce_timers.values():
            handle.cancel()
        self._debounce_timers.clear()
        for team_name in list(self._recordings):
            self.stop_recording(team_name)
