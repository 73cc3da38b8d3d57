from __future__ import annotations

import asyncio
import contextlib
import os
import shutil
from collections.abc import Callable
from pathlib import Path

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from agent_teams_monitor.json_files import is_plain_name
from agent_teams_monitor.state.team_state import TeamStateManager
from agent_teams_monitor.watchers.readers import (
    CONFIG_FILE_NAME,
    classify_task_path,
    classify_team_path,
    list_inbox_files,
    list_task_files,
    read_inbox,
    read_task,
    read_team_config,
)

TEAMS = "teams"
TASKS = "tasks"

_RELEVANT_EVENTS = {"created", "modified", "moved", "deleted", "closed"}


class _RootEventHandler(FileSystemEventHandler):
    """Runs on watchdog's observer thread; hands every path to the event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, kind: str, on_path: Callable[[Path, str], None]):
        self._loop = loop
        self._kind = kind
        self._on_path = on_path

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in _RELEVANT_EVENTS:
            return
        paths = [event.src_path]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(dest)
        for raw in paths:
            try:
                self._loop.call_soon_threadsafe(self._on_path, Path(os.fsdecode(raw)), self._kind)
            except RuntimeError:
                # Event loop already closed during shutdown.
                return


class FileWatcher:
    """Turns writes below the teams/tasks roots into state store updates.

    Raw change events are debounced per path; a directory poll attaches and
    detaches watches as the roots come and go, and a periodic full rescan
    re-reads everything to recover from dropped events.
    """

    def __init__(
        self,
        state: TeamStateManager,
        teams_dir: str | Path,
        tasks_dir: str | Path,
        *,
        debounce_ms: int = 300,
        directory_poll_ms: int = 5000,
        full_scan_ms: int = 10000,
        observer_factory: Callable[[], object] = Observer,
    ):
        self._state = state
        self._teams_dir = Path(teams_dir)
        self._tasks_dir = Path(tasks_dir)
        self._debounce_seconds = max(0.0, debounce_ms / 1000)
        self._directory_poll_seconds = max(0.05, directory_poll_ms / 1000)
        self._full_scan_seconds = max(0.05, full_scan_ms / 1000)
        self._observer_factory = observer_factory
        self._observers: dict[str, object] = {}
        self._debounce_timers: dict[Path, asyncio.TimerHandle] = {}
        self._poll_task: asyncio.Task | None = None
        self._scan_task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._started = False

    @property
    def teams_dir(self) -> Path:
        return self._teams_dir

    @property
    def tasks_dir(self) -> Path:
        return self._tasks_dir

    @property
    def is_watching(self) -> bool:
        return len(self._observers) > 0

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._loop = asyncio.get_running_loop()
        self.poll_for_directories()
        self._poll_task = asyncio.create_task(self._run_every(self._directory_poll_seconds, self.poll_for_directories))
        self._scan_task = asyncio.create_task(self._run_every(self._full_scan_seconds, self.full_scan))
        logger.info(f"Watching {self._teams_dir} and {self._tasks_dir}")

    async def dispose(self) -> None:
        for task in (self._poll_task, self._scan_task):
            if task is not None:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._poll_task = None
        self._scan_task = None
        for handle in self._debounce_timers.values():
            handle.cancel()
        self._debounce_timers.clear()
        observers = list(self._observers.values())
        self._observers.clear()
        for observer in observers:
            observer.stop()
        for observer in observers:
            await asyncio.to_thread(observer.join, 2.0)
        self._started = False

    async def _run_every(self, interval: float, action: Callable[[], None]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                action()
            except Exception as ex:
                logger.warning(f"Periodic {action.__name__} failed: {ex}")

    # --- Directory attach/detach ---

    def poll_for_directories(self) -> None:
        teams_exists = self._teams_dir.is_dir()
        tasks_exists = self._tasks_dir.is_dir()

        if teams_exists and TEAMS not in self._observers:
            self._attach(TEAMS, self._teams_dir)
            self.scan_teams_dir()
        if tasks_exists and TASKS not in self._observers:
            self._attach(TASKS, self._tasks_dir)
            self.scan_tasks_dir()

        if not teams_exists and TEAMS in self._observers:
            self._detach(TEAMS)
            for name in self._state.get_team_names():
                if not self._state.is_team_replaying(name):
                    self._state.remove_team(name)
        if not tasks_exists and TASKS in self._observers:
            self._detach(TASKS)

    def _attach(self, kind: str, root: Path) -> None:
        if self._loop is None:
            return
        observer = self._observer_factory()
        try:
            observer.schedule(_RootEventHandler(self._loop, kind, self.on_raw_change), str(root), recursive=True)
            observer.start()
        except OSError as ex:
            # The periodic rescan still covers this root.
            logger.warning(f"Failed to watch {root}: {ex}")
            return
        self._observers[kind] = observer
        logger.info(f"Attached {kind} watch on {root}")

    def _detach(self, kind: str) -> None:
        observer = self._observers.pop(kind, None)
        if observer is None:
            return
        observer.stop()
        logger.info(f"Detached {kind} watch (directory removed)")

    # --- Debounced change handling ---

    def on_raw_change(self, path: Path, kind: str) -> None:
        if self._loop is None:
            return
        existing = self._debounce_timers.pop(path, None)
        if existing is not None:
            existing.cancel()
        self._debounce_timers[path] = self._loop.call_later(
            self._debounce_seconds, self._fire_debounced, path, kind
        )

    def _fire_debounced(self, path: Path, kind: str) -> None:
        self._debounce_timers.pop(path, None)
        self.handle_file_change(path, kind)

    @property
    def pending_reads(self) -> int:
        return len(self._debounce_timers)

    def handle_file_change(self, path: Path, kind: str) -> None:
        if kind == TEAMS:
            ref = classify_team_path(self._teams_dir, path)
            if ref is None or self._state.is_team_replaying(ref.team_name):
                return
            team_dir = self._teams_dir / ref.team_name
            if not team_dir.is_dir():
                if self._state.get_team(ref.team_name) is not None:
                    self._state.remove_team(ref.team_name)
                return
            if ref.kind == "config":
                self._read_team_config(path)
            elif ref.kind == "inbox":
                self._read_inbox(path, ref.team_name, ref.agent_name or "")
        elif kind == TASKS:
            ref = classify_task_path(self._tasks_dir, path)
            if ref is None or ref.kind != "task" or self._state.is_team_replaying(ref.team_name):
                return
            self._read_task(path, ref.team_name)

    # --- Readers ---

    def _read_team_config(self, path: Path) -> None:
        config = read_team_config(path)
        if config is None or self._state.is_team_replaying(config.name):
            return
        self._state.update_team(config.name, config)

    def _read_inbox(self, path: Path, team_name: str, agent_name: str) -> None:
        entries = read_inbox(path)
        if entries is None:
            return
        self._state.set_messages(team_name, agent_name, entries)

    def _read_task(self, path: Path, team_name: str) -> None:
        task = read_task(path)
        if task is None:
            return
        self._state.update_task(team_name, task)

    # --- Full scan ---

    def full_scan(self) -> None:
        if self._teams_dir.is_dir():
            self.scan_teams_dir()
        if self._tasks_dir.is_dir():
            self.scan_tasks_dir()

    def refresh(self) -> None:
        self.poll_for_directories()
        self.full_scan()

    def scan_teams_dir(self) -> None:
        try:
            team_dirs = [d for d in self._teams_dir.iterdir() if d.is_dir()]
        except OSError as ex:
            logger.debug(f"Teams directory scan skipped: {ex}")
            return

        on_disk = {d.name for d in team_dirs}
        for team_dir in team_dirs:
            if self._state.is_team_replaying(team_dir.name):
                continue
            config_path = team_dir / CONFIG_FILE_NAME
            if config_path.is_file():
                self._read_team_config(config_path)
            for inbox_path in list_inbox_files(team_dir):
                self._read_inbox(inbox_path, team_dir.name, inbox_path.stem)

        for name in self._state.get_team_names():
            if name not in on_disk and not self._state.is_team_replaying(name):
                self._state.remove_team(name)

    def scan_tasks_dir(self) -> None:
        try:
            task_dirs = [d for d in self._tasks_dir.iterdir() if d.is_dir()]
        except OSError as ex:
            logger.debug(f"Tasks directory scan skipped: {ex}")
            return

        for task_dir in task_dirs:
            if self._state.is_team_replaying(task_dir.name):
                continue
            for task_path in list_task_files(task_dir):
                self._read_task(task_path, task_dir.name)

    # --- Cleanup ---

    def clean_team(self, team_name: str, *, confirmed: bool = False) -> None:
        """Delete a team's files from disk. Callers must confirm explicitly."""
        if not confirmed:
            raise ValueError(f"Refusing to delete files for team {team_name!r} without confirmation")
        if not is_plain_name(team_name):
            raise ValueError(f"Invalid team name: {team_name!r}")
        for directory in (self._teams_dir / team_name, self._tasks_dir / team_name):
            shutil.rmtree(directory, ignore_errors=True)
        self._state.remove_team(team_name)
        logger.info(f"Cleaned team files for {team_name!r}")
