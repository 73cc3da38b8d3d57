from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from agent_teams_monitor.models import AgentTask, InboxEntry, TeamConfig, parse_inbox

CONFIG_FILE_NAME = "config.json"
INBOX_DIR_NAME = "inboxes"
LOCK_FILE_NAME = ".lock"


@dataclass(frozen=True)
class WatchedPath:
    kind: str  # "team_dir" | "config" | "inbox" | "task_dir" | "task"
    team_name: str
    agent_name: str | None = None


def _relative_parts(root: Path, path: Path) -> tuple[str, ...] | None:
    try:
        return path.relative_to(root).parts
    except ValueError:
        return None


def classify_team_path(teams_dir: Path, path: Path) -> WatchedPath | None:
    parts = _relative_parts(teams_dir, path)
    if not parts:
        return None
    team_name = parts[0]
    if len(parts) == 1:
        return WatchedPath("team_dir", team_name)
    if len(parts) == 2 and parts[1] == CONFIG_FILE_NAME:
        return WatchedPath("config", team_name)
    if len(parts) == 3 and parts[1] == INBOX_DIR_NAME and parts[2].endswith(".json"):
        return WatchedPath("inbox", team_name, parts[2][: -len(".json")])
    return None


def classify_task_path(tasks_dir: Path, path: Path) -> WatchedPath | None:
    parts = _relative_parts(tasks_dir, path)
    if not parts:
        return None
    team_name = parts[0]
    if len(parts) == 1:
        return WatchedPath("task_dir", team_name)
    if len(parts) == 2:
        file_name = parts[1]
        if file_name == LOCK_FILE_NAME or file_name.endswith(".lock") or not file_name.endswith(".json"):
            return None
        return WatchedPath("task", team_name)
    return None


def _load_json(path: Path) -> object:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def read_team_config(path: Path) -> TeamConfig | None:
    try:
        return TeamConfig.from_dict(_load_json(path))
    except (OSError, ValueError, TypeError) as ex:
        # Mid-write or deleted; the next read or rescan will retry.
        logger.debug(f"Skipping unreadable team config {path}: {ex}")
        return None


def read_inbox(path: Path) -> list[InboxEntry] | None:
    try:
        return parse_inbox(_load_json(path))
    except (OSError, ValueError, TypeError) as ex:
        logger.debug(f"Skipping unreadable inbox {path}: {ex}")
        return None


def read_task(path: Path) -> AgentTask | None:
    try:
        return AgentTask.from_dict(_load_json(path))
    except (OSError, ValueError, TypeError) as ex:
        logger.debug(f"Skipping unreadable task {path}: {ex}")
        return None


def list_inbox_files(team_dir: Path) -> list[Path]:
    inbox_dir = team_dir / INBOX_DIR_NAME
    if not inbox_dir.is_dir():
        return []
    return sorted(p for p in inbox_dir.iterdir() if p.is_file() and p.suffix == ".json")


def list_task_files(task_dir: Path) -> list[Path]:
    if not task_dir.is_dir():
        return []
    return sorted(
        p
        for p in task_dir.iterdir()
        if p.is_file() and p.suffix == ".json" and p.name != LOCK_FILE_NAME
    )
