from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class AppConfig:
    claude_dir: Path
    teams_dir: Path
    tasks_dir: Path
    recordings_dir: Path
    extra_recordings_dirs: list[Path]
    history_dir: Path
    workspace_paths: list[str]
    show_all: bool
    auto_record: bool
    auto_archive: bool
    debounce_ms: int
    capture_debounce_ms: int
    directory_poll_ms: int
    full_scan_ms: int
    snapshot_refresh_ms: int
    history_retention_days: int
    default_replay_speed: float
    log_level: str
    log_consumers: list | None = field(default=None)


def load_json_config(path: Path | None = None) -> dict:
    config_path = path or Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _path_list(value: object, default: list[str]) -> list[str]:
    if value is None:
        return list(default)
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [str(v) for v in value]


def default_claude_dir() -> Path:
    configured = os.environ.get("CLAUDE_CONFIG_DIR", "").strip()
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".claude"


def parse_app_config(config: dict) -> AppConfig:
    claude_dir = Path(config["ClaudeDir"]).expanduser() if config.get("ClaudeDir") else default_claude_dir()
    return AppConfig(
        claude_dir=claude_dir,
        teams_dir=Path(config.get("TeamsDir") or claude_dir / "teams").expanduser(),
        tasks_dir=Path(config.get("TasksDir") or claude_dir / "tasks").expanduser(),
        recordings_dir=Path(config.get("RecordingsDir", ".agent-teams/recordings")),
        extra_recordings_dirs=[Path(p) for p in _path_list(config.get("ExtraRecordingsDirs"), ["recordings"])],
        history_dir=Path(config.get("HistoryDir", ".agent-teams-history")),
        workspace_paths=_path_list(config.get("WorkspacePaths"), [str(Path.cwd())]),
        show_all=_to_bool(config.get("ShowAll", False), default=False),
        auto_record=_to_bool(config.get("AutoRecord", True), default=True),
        auto_archive=_to_bool(config.get("AutoArchive", True), default=True),
        debounce_ms=int(config.get("DebounceMs", 300)),
        capture_debounce_ms=int(config.get("CaptureDebounceMs", 500)),
        directory_poll_ms=int(config.get("DirectoryPollMs", 5000)),
        full_scan_ms=int(config.get("FullScanMs", 10_000)),
        snapshot_refresh_ms=int(config.get("SnapshotRefreshMs", 30_000)),
        history_retention_days=int(config.get("HistoryRetentionDays", 30)),
        default_replay_speed=float(config.get("DefaultReplaySpeed", 1.0)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )
