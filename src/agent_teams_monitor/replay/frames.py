from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from agent_teams_monitor.models import AgentTask, TeamConfig, parse_inbox
from agent_teams_monitor.state.team_state import TeamStateManager

FRAMES_DIR_NAME = "frames"
MANIFEST_FILE_NAME = "manifest.json"


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Frame:
    timestamp: str
    elapsed_ms: int = 0
    teams: dict[str, dict[str, Any]] = field(default_factory=dict)
    tasks: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict) -> Frame:
        if not isinstance(raw, dict):
            raise ValueError("Frame must be a JSON object")
        teams = raw.get("teams") or {}
        tasks = raw.get("tasks") or {}
        if not isinstance(teams, dict) or not isinstance(tasks, dict):
            raise ValueError("Frame teams/tasks must be objects")
        for team_name, team_data in teams.items():
            if not isinstance(team_data, dict):
                raise ValueError(f"Frame entry for team {team_name!r} must be an object")
            for key in ("config", "inboxes"):
                if not isinstance(team_data.get(key) or {}, dict):
                    raise ValueError(f"Frame {key} for team {team_name!r} must be an object")
        for team_name, task_map in tasks.items():
            if not isinstance(task_map, dict) or not all(isinstance(t, dict) for t in task_map.values()):
                raise ValueError(f"Frame tasks for team {team_name!r} must be an object of objects")
        return cls(
            timestamp=str(raw.get("timestamp", "")),
            elapsed_ms=int(raw.get("elapsed_ms", 0) or 0),
            teams=teams,
            tasks=tasks,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "elapsed_ms": self.elapsed_ms,
            "teams": self.teams,
            "tasks": self.tasks,
        }

    def content_hash(self) -> str:
        """Stable hash over the team/task payload; timing fields are excluded."""
        content = json.dumps({"teams": self.teams, "tasks": self.tasks}, sort_keys=True, ensure_ascii=True)
        return hashlib.md5(content.encode("utf-8")).hexdigest()


@dataclass
class Manifest:
    name: str
    started_at: str
    ended_at: str
    frame_count: int
    team_names: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict) -> Manifest:
        if not isinstance(raw, dict):
            raise ValueError("Manifest must be a JSON object")
        team_names = raw.get("teamNames") or []
        return cls(
            name=str(raw.get("name", "")),
            started_at=str(raw.get("startedAt", "")),
            ended_at=str(raw.get("endedAt", "")),
            frame_count=int(raw.get("frameCount", 0) or 0),
            team_names=[str(n) for n in team_names] if isinstance(team_names, list) else [],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "frameCount": self.frame_count,
            "teamNames": list(self.team_names),
        }


def build_frame(state: TeamStateManager, team_name: str) -> Frame:
    frame = Frame(timestamp=utc_now())
    config = state.get_team(team_name)
    if config is None:
        return frame
    inboxes = {agent: [e.to_dict() for e in entries] for agent, entries in state.get_inboxes(team_name).items()}
    frame.teams[team_name] = {"config": config.to_dict(), "inboxes": inboxes}
    tasks = state.get_tasks(team_name)
    if tasks:
        frame.tasks[team_name] = {t.id: t.to_dict() for t in tasks}
    return frame


def apply_frame(state: TeamStateManager, frame: Frame) -> None:
    """Push a frame into the state store the same way live updates arrive."""
    for team_name, team_data in frame.teams.items():
        config = TeamConfig.from_dict(team_data.get("config") or {})
        state.update_team(config.name, config)
        for agent_name, entries in (team_data.get("inboxes") or {}).items():
            state.set_messages(team_name, agent_name, parse_inbox(entries))
    for team_name, task_map in frame.tasks.items():
        for raw_task in task_map.values():
            state.update_task(team_name, AgentTask.from_dict(raw_task))


def frame_file_name(index: int) -> str:
    return f"{index:04d}.json"


def list_frame_files(recording_dir: Path) -> list[Path]:
    frames_dir = recording_dir / FRAMES_DIR_NAME
    if not frames_dir.is_dir():
        return []
    # Numeric order; names are only zero-padded to four digits.
    frames = [p for p in frames_dir.iterdir() if p.is_file() and p.suffix == ".json" and p.stem.isdigit()]
    return sorted(frames, key=lambda p: int(p.stem))


def load_frames(recording_dir: Path) -> list[Frame]:
    frames: list[Frame] = []
    for path in list_frame_files(recording_dir):
        try:
            with open(path, encoding="utf-8") as f:
                frames.append(Frame.from_dict(json.load(f)))
        except (OSError, ValueError, TypeError) as ex:
            logger.warning(f"Skipping unreadable frame {path}: {ex}")
    return frames


def load_manifest(recording_dir: Path) -> Manifest | None:
    path = recording_dir / MANIFEST_FILE_NAME
    if not path.is_file():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            return Manifest.from_dict(json.load(f))
    except (OSError, ValueError, TypeError) as ex:
        logger.debug(f"Ignoring unreadable manifest {path}: {ex}")
        return None
