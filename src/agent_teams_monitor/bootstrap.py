from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from agent_teams_monitor.app_config import AppConfig
from agent_teams_monitor.history import SessionArchiver, SessionHistory
from agent_teams_monitor.logging_config import setup_logging
from agent_teams_monitor.monitor import Monitor
from agent_teams_monitor.replay import AutoRecorder, ReplayManager
from agent_teams_monitor.state import TeamStateManager
from agent_teams_monitor.watchers.file_watcher import FileWatcher


@dataclass
class MonitorRuntime:
    monitor: Monitor
    state: TeamStateManager
    watcher: FileWatcher
    replay_manager: ReplayManager
    history: SessionHistory
    recorder: AutoRecorder | None
    archiver: SessionArchiver | None
    log_descriptions: list[str]


def bootstrap_runtime(
    app: AppConfig,
    *,
    configure_logging: bool = True,
    output: Callable[[str], None] = print,
) -> MonitorRuntime:
    log_descriptions: list[str] = []
    if configure_logging:
        log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    state = TeamStateManager()
    state.set_workspace_paths(app.workspace_paths)
    state.set_show_all(app.show_all)

    watcher = FileWatcher(
        state,
        app.teams_dir,
        app.tasks_dir,
        debounce_ms=app.debounce_ms,
        directory_poll_ms=app.directory_poll_ms,
        full_scan_ms=app.full_scan_ms,
    )

    recording_roots = [(app.recordings_dir, "auto")]
    recording_roots.extend((extra, "project") for extra in app.extra_recordings_dirs)
    replay_manager = ReplayManager(state, recording_roots)

    history = SessionHistory(app.history_dir)

    recorder: AutoRecorder | None = None
    if app.auto_record:
        recorder = AutoRecorder(state, app.recordings_dir, capture_debounce_ms=app.capture_debounce_ms)
        recorder.on_recording_finished(lambda _team, _path: replay_manager.invalidate_recordings_cache())

    archiver: SessionArchiver | None = None
    if app.auto_archive:
        if recorder is not None:
            archiver = SessionArchiver(
                state,
                history,
                recording_lookup=recorder.get_recording_dir,
                frame_count_lookup=recorder.get_frame_count,
                snapshot_refresh_ms=app.snapshot_refresh_ms,
            )
        else:
            archiver = SessionArchiver(state, history, snapshot_refresh_ms=app.snapshot_refresh_ms)

    monitor = Monitor(
        state=state,
        watcher=watcher,
        replay_manager=replay_manager,
        history=history,
        recorder=recorder,
        archiver=archiver,
        history_retention_days=app.history_retention_days,
        default_replay_speed=app.default_replay_speed,
        output=output,
    )

    return MonitorRuntime(
        monitor=monitor,
        state=state,
        watcher=watcher,
        replay_manager=replay_manager,
        history=history,
        recorder=recorder,
        archiver=archiver,
        log_descriptions=log_descriptions,
    )
