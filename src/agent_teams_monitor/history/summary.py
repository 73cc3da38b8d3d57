from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from agent_teams_monitor.models import InboxEntry, PlanApprovalResponse, TaskStatus, parse_timestamp
from agent_teams_monitor.state.lifecycle import effective_task_status
from agent_teams_monitor.state.team_state import TeamSnapshot

SUMMARY_VERSION = 1


class Outcome:
    NO_TASKS = "no-tasks"
    COMPLETED = "completed"
    PARTIAL = "partial"
    ABANDONED = "abandoned"


@dataclass
class SessionStats:
    total_tasks: int = 0
    completed_tasks: int = 0
    message_count: int = 0
    broadcast_count: int = 0
    plan_approvals: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalTasks": self.total_tasks,
            "completedTasks": self.completed_tasks,
            "messageCount": self.message_count,
            "broadcastCount": self.broadcast_count,
            "planApprovals": self.plan_approvals,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> SessionStats:
        return cls(
            total_tasks=int(raw.get("totalTasks", 0) or 0),
            completed_tasks=int(raw.get("completedTasks", 0) or 0),
            message_count=int(raw.get("messageCount", 0) or 0),
            broadcast_count=int(raw.get("broadcastCount", 0) or 0),
            plan_approvals=int(raw.get("planApprovals", 0) or 0),
        )


@dataclass
class SessionRecord:
    team_name: str
    team_description: str
    started_at: str
    ended_at: str
    duration: str
    lead: str
    agents: list[dict[str, str]] = field(default_factory=list)
    tasks: list[dict[str, str]] = field(default_factory=list)
    stats: SessionStats = field(default_factory=SessionStats)
    outcome: str = Outcome.NO_TASKS
    notes: str = ""
    recording_path: str = ""
    frame_count: int = 0
    archive_path: str = ""
    version: int = SUMMARY_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "teamName": self.team_name,
            "teamDescription": self.team_description,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "duration": self.duration,
            "lead": self.lead,
            "agents": [dict(a) for a in self.agents],
            "tasks": [dict(t) for t in self.tasks],
            "stats": self.stats.to_dict(),
            "outcome": self.outcome,
            "notes": self.notes,
            "recordingPath": self.recording_path,
            "frameCount": self.frame_count,
            "archivePath": self.archive_path,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> SessionRecord:
        if not isinstance(raw, dict) or not raw.get("teamName"):
            raise ValueError("Session record requires a teamName")
        return cls(
            version=int(raw.get("version", SUMMARY_VERSION) or SUMMARY_VERSION),
            team_name=str(raw["teamName"]),
            team_description=str(raw.get("teamDescription", "")),
            started_at=str(raw.get("startedAt", "")),
            ended_at=str(raw.get("endedAt", "")),
            duration=str(raw.get("duration", "")),
            lead=str(raw.get("lead", "")),
            agents=list(raw.get("agents") or []),
            tasks=list(raw.get("tasks") or []),
            stats=SessionStats.from_dict(raw.get("stats") or {}),
            outcome=str(raw.get("outcome", Outcome.NO_TASKS)),
            notes=str(raw.get("notes", "")),
            recording_path=str(raw.get("recordingPath", "") or ""),
            frame_count=int(raw.get("frameCount", 0) or 0),
            archive_path=str(raw.get("archivePath", "") or ""),
        )


def format_duration(seconds: float) -> str:
    minutes = max(0, round(seconds / 60))
    if minutes < 60:
        return f"{minutes}m"
    return f"{minutes // 60}h{minutes % 60}m"


def _broadcast_key(entry: InboxEntry) -> tuple[str, str, object]:
    parsed = parse_timestamp(entry.timestamp)
    second: object = round(parsed.timestamp()) if parsed is not None else entry.timestamp
    return entry.sender, entry.text, second


def count_broadcasts(inboxes: Mapping[str, list[InboxEntry]]) -> int:
    """Count messages delivered to two or more inboxes within the same second."""
    seen_in: dict[tuple[str, str, object], set[str]] = {}
    for inbox_name, entries in inboxes.items():
        for entry in entries:
            seen_in.setdefault(_broadcast_key(entry), set()).add(inbox_name)
    return sum(1 for inbox_names in seen_in.values() if len(inbox_names) >= 2)


def count_plan_approvals(inboxes: Mapping[str, list[InboxEntry]]) -> int:
    total = 0
    for entries in inboxes.values():
        for entry in entries:
            typed = entry.typed
            if isinstance(typed, PlanApprovalResponse) and typed.approved:
                total += 1
    return total


def classify_outcome(total_tasks: int, completed_tasks: int) -> str:
    if total_tasks == 0:
        return Outcome.NO_TASKS
    if completed_tasks == total_tasks:
        return Outcome.COMPLETED
    if completed_tasks > 0:
        return Outcome.PARTIAL
    return Outcome.ABANDONED


def build_session_record(
    snapshot: TeamSnapshot,
    *,
    started_at: datetime,
    ended_at: datetime,
    recording_path: str = "",
    frame_count: int = 0,
    archive_path: str = "",
) -> SessionRecord:
    config = snapshot.config
    inboxes = snapshot.inboxes

    task_rows: list[dict[str, str]] = []
    completed = 0
    for task in snapshot.tasks:
        status = effective_task_status(config, inboxes, task)
        if status == TaskStatus.COMPLETED:
            completed += 1
        task_rows.append(
            {
                "title": task.description or task.subject or f"Task {task.id}",
                "status": status,
                "owner": task.owner_name,
            }
        )

    stats = SessionStats(
        total_tasks=len(snapshot.tasks),
        completed_tasks=completed,
        message_count=sum(len(entries) for entries in inboxes.values()),
        broadcast_count=count_broadcasts(inboxes),
        plan_approvals=count_plan_approvals(inboxes),
    )

    return SessionRecord(
        team_name=config.name,
        team_description=config.description,
        started_at=started_at.isoformat(timespec="seconds"),
        ended_at=ended_at.isoformat(timespec="seconds"),
        duration=format_duration((ended_at - started_at).total_seconds()),
        lead=config.lead_name,
        agents=[
            {"name": m.name, "model": m.model, "role": "lead" if m.is_lead else (m.agent_type or "worker")}
            for m in config.members
        ],
        tasks=task_rows,
        stats=stats,
        outcome=classify_outcome(stats.total_tasks, stats.completed_tasks),
        recording_path=recording_path,
        frame_count=frame_count,
        archive_path=archive_path,
    )
