from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from agent_teams_monitor.models import (
    LEAD_AGENT_TYPE,
    MAX_TASK_DESCRIPTION_CHARS,
    AgentTask,
    InboxEntry,
    TaskStatus,
    TeamConfig,
    TeamMember,
)

WORKER_COLORS = ["blue", "green", "yellow", "orange", "purple", "red"]
DEFAULT_WORKER_TYPE = "general-purpose"
LEAD_MODEL = "opus"
WORKER_MODEL = "sonnet"


def fake_uuid(seed: str) -> str:
    """Deterministic UUID-shaped id derived from ``seed``."""
    digest = hashlib.md5(seed.encode("utf-8")).hexdigest()
    return f"{digest[:8]}-{digest[8:12]}-{digest[12:16]}-{digest[16:20]}-{digest[20:32]}"


@dataclass
class MemberSpec:
    name: str
    agent_type: str | None = None
    model: str | None = None
    color: str | None = None
    prompt: str | None = None
    plan_mode_required: bool = False
    joined_at_offset_ms: int | None = None


def _now_ms() -> int:
    return int(datetime.now(UTC).timestamp() * 1000)


def build_config(
    name: str,
    members: list[MemberSpec],
    *,
    description: str | None = None,
    cwd: str | None = None,
    created_at: int | None = None,
) -> TeamConfig:
    """Session descriptor with a lead (first member by default) and in-process workers."""
    created = created_at if created_at is not None else _now_ms()
    workdir = cwd if cwd is not None else os.getcwd()

    built: list[TeamMember] = []
    for i, member_spec in enumerate(members):
        agent_type = member_spec.agent_type or (LEAD_AGENT_TYPE if i == 0 else DEFAULT_WORKER_TYPE)
        is_lead = agent_type == LEAD_AGENT_TYPE
        offset = member_spec.joined_at_offset_ms if member_spec.joined_at_offset_ms is not None else i * 2000
        member = TeamMember(
            agent_id=f"{member_spec.name}@{name}",
            name=member_spec.name,
            agent_type=agent_type,
            model=LEAD_MODEL if is_lead else (member_spec.model or WORKER_MODEL),
            joined_at=created + offset,
            tmux_pane_id="" if is_lead else "in-process",
            cwd=workdir,
        )
        if not is_lead:
            member.prompt = member_spec.prompt or f"Work on tasks for {name}"
            member.color = member_spec.color or WORKER_COLORS[i % len(WORKER_COLORS)]
            member.plan_mode_required = member_spec.plan_mode_required
            member.backend_type = "in-process"
        built.append(member)

    lead = next((m for m in built if m.is_lead), None)
    return TeamConfig(
        name=name,
        description=description if description is not None else f"Simulated team: {name}",
        created_at=created,
        lead_agent_id=lead.agent_id if lead is not None else f"{LEAD_AGENT_TYPE}@{name}",
        lead_session_id=fake_uuid(name),
        members=built,
    )


def build_task(
    task_id: str,
    subject: str,
    description: str,
    *,
    status: str = TaskStatus.PENDING,
    blocks: list[str] | None = None,
    blocked_by: list[str] | None = None,
    owner: str | None = None,
) -> AgentTask:
    return AgentTask(
        id=task_id,
        subject=subject,
        description=description[:MAX_TASK_DESCRIPTION_CHARS],
        status=status,
        blocks=list(blocks or []),
        blocked_by=list(blocked_by or []),
        owner=owner,
        metadata={"_internal": True},
    )


def _timestamp(offset_ms: int) -> str:
    moment = datetime.now(UTC) + timedelta(milliseconds=offset_ms)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_message(
    sender: str,
    text: str,
    *,
    summary: str | None = None,
    color: str | None = None,
    read: bool = False,
    timestamp_offset_ms: int = 0,
) -> InboxEntry:
    return InboxEntry(
        sender=sender,
        text=text,
        timestamp=_timestamp(timestamp_offset_ms),
        summary=summary,
        color=color,
        read=read,
    )


def build_typed_message(
    sender: str,
    typed: dict[str, Any],
    *,
    summary: str | None = None,
    color: str | None = None,
    read: bool = False,
    timestamp_offset_ms: int = 0,
) -> InboxEntry:
    """Message whose text is a serialized typed payload, as agents write them."""
    return build_message(
        sender,
        json.dumps(typed),
        summary=summary,
        color=color,
        read=read,
        timestamp_offset_ms=timestamp_offset_ms,
    )
