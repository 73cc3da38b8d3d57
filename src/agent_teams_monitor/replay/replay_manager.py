from __future__ import annotations

import asyncio
import contextlib
import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from agent_teams_monitor.replay.frames import (
    Frame,
    Manifest,
    apply_frame,
    list_frame_files,
    load_frames,
    load_manifest,
)
from agent_teams_monitor.state.team_state import ReplayState, ReplayStatus, TeamStateManager

_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}_")


class ReplayConflictError(ValueError):
    """Raised when a replay would drive a team that is already live or replaying."""


@dataclass
class RecordingInfo:
    label: str
    description: str
    dir: Path
    manifest: Manifest | None
    frame_count: int
    source: str
    team_names: list[str] = field(default_factory=list)


@dataclass
class ActiveReplay:
    recording_dir: Path
    team_names: list[str]
    frames: list[Frame]
    speed: float
    cancelled: asyncio.Event
    task: asyncio.Task | None = None


def _normalized(path: Path) -> str:
    return os.path.normcase(str(path.resolve())).casefold()


class ReplayManager:
    """Re-drives the state store from recordings on a virtual clock.

    Frames are pushed into the in-memory store only, so several recordings
    can play at once without touching the watched directories.
    """

    def __init__(self, state: TeamStateManager, recording_roots: list[tuple[str | Path, str]]):
        self._state = state
        self._recording_roots = [(Path(root), source) for root, source in recording_roots]
        self._active: dict[str, ActiveReplay] = {}
        self._recordings_cache: list[RecordingInfo] | None = None

    @property
    def is_replaying(self) -> bool:
        return len(self._active) > 0

    @property
    def active_recordings(self) -> list[Path]:
        return [replay.recording_dir for replay in self._active.values()]

    # --- Discovery ---

    def find_recordings(self, *, use_cache: bool = False) -> list[RecordingInfo]:
        if use_cache and self._recordings_cache is not None:
            return list(self._recordings_cache)
        results: list[RecordingInfo] = []
        seen: set[str] = set()
        for root, source in self._recording_roots:
            self._scan_recordings_dir(root, source, results, seen)
        self._recordings_cache = results
        return list(results)

    def invalidate_recordings_cache(self) -> None:
        self._recordings_cache = None

    def _scan_recordings_dir(self, root: Path, source: str, results: list[RecordingInfo], seen: set[str]) -> None:
        if not root.is_dir():
            return
        try:
            candidates = sorted(d for d in root.iterdir() if d.is_dir())
        except OSError as ex:
            logger.debug(f"Cannot list recordings in {root}: {ex}")
            return

        for recording_dir in candidates:
            key = _normalized(recording_dir)
            if key in seen:
                continue
            seen.add(key)

            frame_files = list_frame_files(recording_dir)
            if not frame_files:
                continue

            manifest = load_manifest(recording_dir)
            if manifest is not None and manifest.team_names:
                team_names = list(manifest.team_names)
            else:
                team_names = self._team_names_from_first_frame(frame_files[0])

            label = (manifest.name if manifest and manifest.name else "") or _DATE_PREFIX.sub("", recording_dir.name)
            results.append(
                RecordingInfo(
                    label=label,
                    description=f"{len(frame_files)} frames · {', '.join(team_names) or 'unknown team'}",
                    dir=recording_dir,
                    manifest=manifest,
                    frame_count=len(frame_files),
                    source=source,
                    team_names=team_names,
                )
            )

    def _team_names_from_first_frame(self, frame_path: Path) -> list[str]:
        try:
            with open(frame_path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as ex:
            logger.debug(f"Cannot infer team names from {frame_path}: {ex}")
            return []
        teams = raw.get("teams") if isinstance(raw, dict) else None
        return list(teams.keys()) if isinstance(teams, dict) else []

    def find_recording(self, recording_dir: str | Path) -> RecordingInfo | None:
        target = _normalized(Path(recording_dir))
        for recording in self.find_recordings():
            if _normalized(recording.dir) == target:
                return recording
        return None

    def find_latest_recording_for_team(self, team_name: str) -> RecordingInfo | None:
        matches = [r for r in self.find_recordings() if team_name in r.team_names]
        if not matches:
            return None

        def _sort_key(r: RecordingInfo) -> str:
            if r.manifest is not None and r.manifest.started_at:
                return r.manifest.started_at
            return r.dir.name

        return max(matches, key=_sort_key)

    # --- Starting and stopping ---

    def _check_conflicts(self, team_names: list[str]) -> None:
        for name in team_names:
            if self._state.is_replay_active(name):
                raise ReplayConflictError(f"Team '{name}' is already being replayed. Stop it first.")
            if self._state.get_team(name) is not None and not self._state.is_team_replaying(name):
                raise ReplayConflictError(f"Team '{name}' is live; a replay cannot drive it concurrently.")

    def start_replay(self, recording_dirs: list[str | Path], speed: float = 1.0) -> list[asyncio.Task]:
        """Start replaying the given recordings concurrently.

        Every request is validated before anything starts; a rejected request
        leaves the state store untouched.
        """
        if speed < 0:
            raise ValueError(f"Replay speed must be >= 0, got {speed}")
        if not recording_dirs:
            raise ValueError("No recordings selected")

        selected: list[tuple[RecordingInfo, list[Frame], list[str]]] = []
        requested: set[str] = set()
        for recording_dir in recording_dirs:
            recording = self.find_recording(recording_dir)
            if recording is None:
                raise ValueError(f"Recording not found: {recording_dir}")
            if _normalized(recording.dir) in self._active:
                raise ReplayConflictError(f"Recording is already playing: {recording.dir}")
            frames = load_frames(recording.dir)
            if not frames:
                raise ValueError(f"Recording has no readable frames: {recording.dir}")
            team_names = recording.team_names or list(frames[0].teams.keys())
            overlap = requested.intersection(team_names)
            if overlap:
                raise ReplayConflictError(f"Team(s) selected twice: {', '.join(sorted(overlap))}")
            requested.update(team_names)
            self._check_conflicts(team_names)
            selected.append((recording, frames, team_names))

        # A finished or stopped replay still owns its team; start from an empty model.
        for _, _, team_names in selected:
            for name in team_names:
                if self._state.is_team_replaying(name):
                    self._state.clear_team_replay_state(name)
                    self._state.remove_team(name)

        tasks: list[asyncio.Task] = []
        for recording, frames, team_names in selected:
            replay = ActiveReplay(
                recording_dir=recording.dir,
                team_names=team_names,
                frames=frames,
                speed=speed,
                cancelled=asyncio.Event(),
            )
            self._active[_normalized(recording.dir)] = replay
            self._publish(replay, ReplayStatus.PLAYING, 0)
            replay.task = asyncio.create_task(self._play(replay))
            tasks.append(replay.task)

        speed_label = "instant" if speed == 0 else f"{speed:g}x"
        logger.info(f"Replay started: {len(tasks)} recording(s) ({speed_label})")
        return tasks

    async def replay_team(
        self, team_name: str, recording_dir: str | Path | None = None, speed: float = 1.0
    ) -> list[asyncio.Task]:
        """Replay a team from scratch, stopping any replay already driving it."""
        if recording_dir is None:
            recording = self.find_latest_recording_for_team(team_name)
            if recording is None:
                raise ValueError(f"No recording found for team {team_name!r}")
            recording_dir = recording.dir
        if self._state.is_team_replaying(team_name):
            await self.dismiss_team(team_name)
        return self.start_replay([recording_dir], speed)

    async def stop_team_replay(self, team_name: str) -> bool:
        for replay in list(self._active.values()):
            if team_name in replay.team_names:
                replay.cancelled.set()
                if replay.task is not None:
                    with contextlib.suppress(asyncio.CancelledError):
                        await replay.task
                return True
        return False

    async def stop_replay(self) -> None:
        replays = list(self._active.values())
        for replay in replays:
            replay.cancelled.set()
        for replay in replays:
            if replay.task is not None:
                with contextlib.suppress(asyncio.CancelledError):
                    await replay.task

    async def dismiss_team(self, team_name: str) -> None:
        """Stop a replayed team and drop it so live data can take its place."""
        await self.stop_team_replay(team_name)
        self._state.clear_team_replay_state(team_name)
        self._state.remove_team(team_name)

    async def wait(self) -> None:
        tasks = [r.task for r in self._active.values() if r.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # --- Playback ---

    async def _play(self, replay: ActiveReplay) -> None:
        frames = replay.frames
        total = len(frames)
        prev_elapsed = 0
        try:
            for i, frame in enumerate(frames):
                if replay.cancelled.is_set():
                    break
                if i > 0 and replay.speed > 0:
                    delta = frame.elapsed_ms - prev_elapsed
                    if delta > 0:
                        await self._cancellable_sleep(delta / 1000 / replay.speed, replay.cancelled)
                    if replay.cancelled.is_set():
                        break
                prev_elapsed = frame.elapsed_ms

                try:
                    apply_frame(self._state, frame)
                except (ValueError, TypeError) as ex:
                    logger.warning(f"Skipping malformed frame {i + 1} of {replay.recording_dir}: {ex}")
                self._publish(replay, ReplayStatus.PLAYING, i + 1)
        except asyncio.CancelledError:
            replay.cancelled.set()
            raise
        finally:
            final_status = ReplayStatus.STOPPED if replay.cancelled.is_set() else ReplayStatus.COMPLETED
            for team_name in replay.team_names:
                current = self._state.get_team_replay_state(team_name)
                # A newer replay may already own this team.
                if current is not None and current.recording_dir != str(replay.recording_dir):
                    continue
                current_frame = current.current_frame if current is not None else total
                progress = 100 if final_status == ReplayStatus.COMPLETED else (current.progress_pct if current else 0)
                self._state.set_team_replay_state(
                    team_name,
                    ReplayState(
                        recording_dir=str(replay.recording_dir),
                        status=final_status,
                        speed=replay.speed,
                        current_frame=current_frame,
                        total_frames=total,
                        progress_pct=progress,
                    ),
                )
            self._active.pop(_normalized(replay.recording_dir), None)
            logger.info(f"Replay {final_status}: {replay.recording_dir.name}")

    def _publish(self, replay: ActiveReplay, status: str, current_frame: int) -> None:
        total = len(replay.frames)
        progress = round(current_frame / total * 100) if total else 0
        for team_name in replay.team_names:
            self._state.set_team_replay_state(
                team_name,
                ReplayState(
                    recording_dir=str(replay.recording_dir),
                    status=status,
                    speed=replay.speed,
                    current_frame=current_frame,
                    total_frames=total,
                    progress_pct=progress,
                ),
            )

    @staticmethod
    async def _cancellable_sleep(seconds: float, cancelled: asyncio.Event) -> None:
        if cancelled.is_set():
            return
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(cancelled.wait(), timeout=seconds)

    async def dispose(self) -> None:
        await self.stop_replay()
        self._active.clear()
