from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

from agent_teams_monitor.history.store import SessionHistory
from agent_teams_monitor.history.summary import SessionRecord, build_session_record
from agent_teams_monitor.json_files import is_plain_name, write_json
from agent_teams_monitor.state.events import ReplayStateChanged, TeamRemoved, TeamStateEvent
from agent_teams_monitor.state.team_state import TeamSnapshot, TeamStateManager

TASKS_DIR_NAME = "tasks"
INBOXES_DIR_NAME = "inboxes"
CONFIG_FILE_NAME = "config.json"


@dataclass
class TrackedSession:
    snapshot: TeamSnapshot
    first_seen: datetime


def _no_recording(team_name: str) -> Path | None:
    return None


def _no_frames(team_name: str) -> int:
    return 0


class SessionArchiver:
    """Keeps the last known snapshot of each live team and archives it when the team goes away.

    The recorder must be attached before the archiver so that a team's recording
    is finalised (and its path known) by the time the removal reaches us.
    """

    def __init__(
        self,
        state: TeamStateManager,
        history: SessionHistory,
        *,
        recording_lookup: Callable[[str], Path | None] = _no_recording,
        frame_count_lookup: Callable[[str], int] = _no_frames,
        snapshot_refresh_ms: int = 30000,
        clock: Callable[[], datetime] | None = None,
    ):
        self._state = state
        self._history = history
        self._recording_lookup = recording_lookup
        self._frame_count_lookup = frame_count_lookup
        self._refresh_seconds = max(0.05, snapshot_refresh_ms / 1000)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sessions: dict[str, TrackedSession] = {}
        self._replayed: set[str] = set()
        self._archived: list[SessionRecord] = []
        self._unsubscribe: Callable[[], None] | None = None
        self._refresh_task: asyncio.Task | None = None

    @property
    def archived(self) -> list[SessionRecord]:
        return list(self._archived)

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._state.subscribe(self._on_state_change)

    async def start(self) -> None:
        self.attach()
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def dispose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._refresh_seconds)
            try:
                self.refresh_snapshots()
            except Exception as ex:
                logger.warning(f"Snapshot refresh failed: {ex}")

    def tracked_teams(self) -> list[str]:
        return list(self._sessions)

    def _on_state_change(self, event: TeamStateEvent) -> None:
        name = event.team_name
        if not name:
            return
        if isinstance(event, TeamRemoved):
            self._on_team_removed(name)
            return
        if isinstance(event, ReplayStateChanged) or self._state.is_team_replaying(name):
            self._mark_replayed(name)
            return
        self._track(name)

    def _mark_replayed(self, team_name: str) -> None:
        if self._state.is_team_replaying(team_name):
            self._replayed.add(team_name)
            self._sessions.pop(team_name, None)

    def _track(self, team_name: str) -> None:
        if team_name in self._replayed:
            return
        snapshot = self._state.get_snapshot(team_name)
        if snapshot is None:
            return
        tracked = self._sessions.get(team_name)
        if tracked is None:
            self._sessions[team_name] = TrackedSession(snapshot=snapshot, first_seen=self._clock())
        else:
            tracked.snapshot = snapshot

    def _on_team_removed(self, team_name: str) -> None:
        if team_name in self._replayed:
            self._replayed.discard(team_name)
            self._sessions.pop(team_name, None)
            logger.debug(f"Not archiving replayed team {team_name!r}")
            return
        # Content is still readable while the removal is being delivered.
        self._track(team_name)
        tracked = self._sessions.pop(team_name, None)
        if tracked is None:
            return
        self.archive_session(tracked)

    def refresh_snapshots(self) -> None:
        """Refresh every tracked snapshot; teams that vanished without a removal are archived."""
        live = set(self._state.get_team_names())
        for team_name in live:
            if self._state.is_team_replaying(team_name):
                self._mark_replayed(team_name)
                continue
            self._track(team_name)
        for team_name in [n for n in self._sessions if n not in live]:
            tracked = self._sessions.pop(team_name)
            self.archive_session(tracked)

    # --- Archiving ---

    def _session_dir(self, team_name: str, first_seen: datetime) -> Path:
        session_dir = self._history.history_dir / f"{first_seen:%Y-%m-%d}_{team_name}"
        if session_dir.exists():
            session_dir = session_dir.with_name(f"{session_dir.name}_{self._clock():%H%M%S}")
        return session_dir

    def archive_session(self, tracked: TrackedSession) -> SessionRecord | None:
        snapshot = tracked.snapshot
        team_name = snapshot.config.name
        if not is_plain_name(team_name):
            logger.warning(f"Not archiving team with unsafe name {team_name!r}")
            return None
        session_dir = self._session_dir(team_name, tracked.first_seen)
        try:
            write_json(session_dir / CONFIG_FILE_NAME, snapshot.config.to_dict())
            for task in snapshot.tasks:
                if not is_plain_name(f"{task.id}.json"):
                    logger.warning(f"Skipping task with unsafe id {task.id!r} in {team_name!r}")
                    continue
                write_json(session_dir / TASKS_DIR_NAME / f"{task.id}.json", task.to_dict())
            (session_dir / INBOXES_DIR_NAME).mkdir(parents=True, exist_ok=True)
            for agent_name, entries in snapshot.inboxes.items():
                if not is_plain_name(f"{agent_name}.json"):
                    logger.warning(f"Skipping inbox with unsafe agent name {agent_name!r} in {team_name!r}")
                    continue
                write_json(session_dir / INBOXES_DIR_NAME / f"{agent_name}.json", [e.to_dict() for e in entries])
        except OSError as ex:
            logger.warning(f"Failed to archive session {team_name!r}: {ex}")
            return None

        recording_dir = self._recording_lookup(team_name)
        record = build_session_record(
            snapshot,
            started_at=tracked.first_seen,
            ended_at=self._clock(),
            recording_path=str(recording_dir) if recording_dir is not None else "",
            frame_count=self._frame_count_lookup(team_name) if recording_dir is not None else 0,
            archive_path=str(session_dir),
        )
        try:
            self._history.append(record)
        except OSError as ex:
            logger.warning(f"Failed to append session summary for {team_name!r}: {ex}")
            return None

        self._archived.append(record)
        logger.info(f"Archived session {team_name!r} to {session_dir}")
        return record
