from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from loguru import logger

from agent_teams_monitor.commands.router import CommandRouter
from agent_teams_monitor.history import SessionArchiver, SessionHistory, prune_history
from agent_teams_monitor.replay import AutoRecorder, RecordingInfo, ReplayConflictError, ReplayManager
from agent_teams_monitor.services.status_formatter import StatusFormatter
from agent_teams_monitor.state import TeamStateManager
from agent_teams_monitor.watchers.file_watcher import FileWatcher


def _parse_limit(text: str, default: int) -> int | None:
    if not text:
        return default
    try:
        value = int(text)
    except ValueError:
        return None
    return value if value > 0 else None


class Monitor:
    """Owns the observer pipeline and serves the interactive slash commands."""

    _LINE_PREFIX = "monitor> "

    def __init__(
        self,
        *,
        state: TeamStateManager,
        watcher: FileWatcher,
        replay_manager: ReplayManager,
        history: SessionHistory,
        recorder: AutoRecorder | None = None,
        archiver: SessionArchiver | None = None,
        history_retention_days: int = 30,
        default_replay_speed: float = 1.0,
        output: Callable[[str], None] = print,
    ):
        self._state = state
        self._watcher = watcher
        self._replay_manager = replay_manager
        self._history = history
        self._recorder = recorder
        self._archiver = archiver
        self._history_retention_days = history_retention_days
        self._default_replay_speed = default_replay_speed
        self._output = output
        self._formatter = StatusFormatter(line_prefix=self._LINE_PREFIX)
        self._last_listing: list[RecordingInfo] = []
        self._started = False
        self._command_router = CommandRouter(
            on_help=self._on_help,
            on_status=self._handle_status_command,
            on_refresh=self._handle_refresh_command,
            on_recordings=self._handle_recordings_command,
            on_replay=self._handle_replay_command,
            on_stop=self._handle_stop_command,
            on_dismiss=self._handle_dismiss_command,
            on_clean=self._handle_clean_command,
            on_scope=self._handle_scope_command,
            on_history=self._handle_history_command,
            on_prune=self._handle_prune_command,
            on_unknown=self._on_unknown_command,
        )

    @property
    def state(self) -> TeamStateManager:
        return self._state

    @property
    def replay_manager(self) -> ReplayManager:
        return self._replay_manager

    def _print(self, text: str) -> None:
        self._output(f"{self._LINE_PREFIX}{text}")

    def _print_lines(self, lines: list[str]) -> None:
        for line in lines:
            self._output(line)

    # --- Lifecycle ---

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        # Recorder first: it must finalise a recording before the archiver reads its path.
        if self._recorder is not None:
            self._recorder.attach()
        if self._archiver is not None:
            await self._archiver.start()
        await self._watcher.start()

    async def dispose(self) -> None:
        await self._replay_manager.dispose()
        await self._watcher.dispose()
        if self._recorder is not None:
            self._recorder.dispose()
        if self._archiver is not None:
            await self._archiver.dispose()
        self._state.dispose()
        self._started = False

    def prune(self) -> int:
        try:
            pruned = prune_history(self._history, retention_days=self._history_retention_days)
        except OSError as ex:
            logger.warning(f"History pruning failed: {ex}")
            return 0
        return len(pruned)

    async def handle_command(self, text: str) -> bool:
        return await self._command_router.try_handle(text)

    # --- Commands ---

    async def _on_help(self) -> None:
        self._print("Available commands:")
        self._print("- /help")
        self._print("- /status [team]")
        self._print("- /refresh")
        self._print("- /recordings")
        self._print("- /replay <recording-dir|number|team> [speed]  (speed 0 = instant)")
        self._print("- /stop [team]")
        self._print("- /dismiss <team>")
        self._print("- /clean <team> --yes")
        self._print("- /scope  (toggle between this workspace and all teams)")
        self._print("- /history [limit]")
        self._print("- /prune")

    def _on_unknown_command(self, trimmed: str) -> None:
        self._print(f"Unknown command: {trimmed} (try /help)")

    async def _handle_status_command(self, command: str) -> None:
        parts = command.split(maxsplit=1)
        if len(parts) == 2:
            self._print_lines(self._formatter.format_team_detail_lines(self._state, parts[1].strip()))
            return

        names = self._state.get_filtered_team_names()
        scope = "all teams" if self._state.show_all else "this workspace"
        if not names:
            self._print(f"No teams found ({scope}).")
            return
        self._print(f"Teams ({scope}):")
        for name in names:
            self._output(self._formatter.format_team_overview(self._state, name))

    async def _handle_refresh_command(self, command: str) -> None:
        self._watcher.refresh()
        self._replay_manager.invalidate_recordings_cache()
        self._print(f"Refreshed ({len(self._state.get_team_names())} team(s) loaded).")

    async def _handle_recordings_command(self, command: str) -> None:
        self._last_listing = self._replay_manager.find_recordings()
        if not self._last_listing:
            self._print("No recordings found.")
            return
        self._print("Recordings:")
        for index, recording in enumerate(self._last_listing, start=1):
            self._output(self._formatter.format_recording_entry(index, recording))

    def _resolve_recording_target(self, target: str) -> Path | None:
        if target.isdigit():
            index = int(target)
            if 1 <= index <= len(self._last_listing):
                return self._last_listing[index - 1].dir
            return None
        path = Path(target).expanduser()
        if path.is_dir():
            return path
        return None

    async def _handle_replay_command(self, command: str) -> None:
        parts = command.split()
        if len(parts) not in (2, 3):
            self._print("Usage: /replay <recording-dir|number|team> [speed]")
            return
        target = parts[1]
        speed = self._default_replay_speed
        if len(parts) == 3:
            try:
                speed = float(parts[2])
            except ValueError:
                self._print(f"Invalid speed: {parts[2]}")
                return

        try:
            recording_dir = self._resolve_recording_target(target)
            if recording_dir is not None:
                self._replay_manager.start_replay([recording_dir], speed)
            elif target.isdigit():
                self._print(f"No recording #{target}; run /recordings first.")
                return
            else:
                await self._replay_manager.replay_team(target, speed=speed)
        except ReplayConflictError as ex:
            self._print(f"Replay rejected: {ex}")
            return
        except ValueError as ex:
            self._print(f"Replay failed: {ex}")
            return
        self._print(f"Replaying {target} at {'instant' if speed == 0 else f'{speed:g}x'}.")

    async def _handle_stop_command(self, command: str) -> None:
        parts = command.split(maxsplit=1)
        if len(parts) == 2:
            team_name = parts[1].strip()
            if await self._replay_manager.stop_team_replay(team_name):
                self._print(f"Stopped replay of {team_name}.")
            else:
                self._print(f"No replay running for {team_name}.")
            return
        if not self._replay_manager.is_replaying:
            self._print("No replay running.")
            return
        await self._replay_manager.stop_replay()
        self._print("Stopped all replays.")

    async def _handle_dismiss_command(self, command: str) -> None:
        parts = command.split(maxsplit=1)
        if len(parts) != 2:
            self._print("Usage: /dismiss <team>")
            return
        team_name = parts[1].strip()
        if not self._state.is_team_replaying(team_name):
            self._print(f"{team_name} is not a replayed team.")
            return
        await self._replay_manager.dismiss_team(team_name)
        self._print(f"Dismissed {team_name}.")

    async def _handle_clean_command(self, command: str) -> None:
        parts = command.split()
        if len(parts) < 2:
            self._print("Usage: /clean <team> --yes")
            return
        team_name = parts[1]
        try:
            self._watcher.clean_team(team_name, confirmed="--yes" in parts[2:])
        except ValueError as ex:
            self._print(f"{ex}. Re-run as /clean {team_name} --yes")
            return
        self._print(f"Deleted files for {team_name}.")

    async def _handle_scope_command(self, command: str) -> None:
        self._state.set_show_all(not self._state.show_all)
        self._print("Showing all teams." if self._state.show_all else "Showing teams for this workspace.")

    async def _handle_history_command(self, command: str) -> None:
        parts = command.split(maxsplit=1)
        limit = _parse_limit(parts[1].strip() if len(parts) == 2 else "", 10)
        if limit is None:
            self._print("Usage: /history [limit]")
            return
        records = self._history.list_records(limit=limit)
        if not records:
            self._print("No archived sessions.")
            return
        self._print("Archived sessions:")
        for record in records:
            self._output(self._formatter.format_history_entry(record))

    async def _handle_prune_command(self, command: str) -> None:
        count = self.prune()
        self._print(f"Pruned {count} session(s) older than {self._history_retention_days} days.")
