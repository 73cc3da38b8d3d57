from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Union

LEAD_AGENT_TYPE = "team-lead"
MAX_TASK_DESCRIPTION_CHARS = 100


class TaskStatus:
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    ALL = (PENDING, IN_PROGRESS, COMPLETED)


class AgentLifecycle:
    ACTIVE = "active"
    IDLE = "idle"
    SHUTTING_DOWN = "shutting_down"
    SHUTDOWN = "shutdown"


class TeamStatus:
    ACTIVE = "active"
    WINDING_DOWN = "winding_down"
    COMPLETED = "completed"


def parse_timestamp(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None


def timestamp_sort_key(value: str) -> tuple[float, str]:
    """Chronological key for ISO-8601 strings of mixed precision; unparseable values sort first."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return float("-inf"), value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp(), value


def _str_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


@dataclass
class TeamMember:
    agent_id: str
    name: str
    agent_type: str
    model: str = ""
    joined_at: int = 0
    tmux_pane_id: str = ""
    cwd: str = ""
    subscriptions: list = field(default_factory=list)
    prompt: str | None = None
    color: str | None = None
    plan_mode_required: bool | None = None
    backend_type: str | None = None

    @property
    def is_lead(self) -> bool:
        return self.agent_type == LEAD_AGENT_TYPE

    @classmethod
    def from_dict(cls, raw: dict) -> TeamMember:
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError("Team member requires a name")
        member = cls(
            agent_id=str(raw.get("agentId", "")),
            name=name,
            agent_type=str(raw.get("agentType", "")),
            model=str(raw.get("model", "")),
            joined_at=int(raw.get("joinedAt", 0) or 0),
            tmux_pane_id=str(raw.get("tmuxPaneId", "")),
            cwd=str(raw.get("cwd", "")),
            subscriptions=list(raw.get("subscriptions") or []),
            prompt=raw.get("prompt"),
            color=raw.get("color"),
            plan_mode_required=raw.get("planModeRequired"),
            backend_type=raw.get("backendType"),
        )
        # The lead never carries a color or backend.
        if member.is_lead:
            member.color = None
            member.backend_type = None
        return member

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "agentId": self.agent_id,
            "name": self.name,
            "agentType": self.agent_type,
            "model": self.model,
            "joinedAt": self.joined_at,
            "tmuxPaneId": self.tmux_pane_id,
            "cwd": self.cwd,
            "subscriptions": list(self.subscriptions),
        }
        if self.prompt is not None:
            data["prompt"] = self.prompt
        if self.color is not None:
            data["color"] = self.color
        if self.plan_mode_required is not None:
            data["planModeRequired"] = self.plan_mode_required
        if self.backend_type is not None:
            data["backendType"] = self.backend_type
        return data


@dataclass
class TeamConfig:
    name: str
    description: str = ""
    created_at: int = 0
    lead_agent_id: str = ""
    lead_session_id: str = ""
    members: list[TeamMember] = field(default_factory=list)

    @property
    def lead_name(self) -> str:
        for member in self.members:
            if self.lead_agent_id and member.agent_id == self.lead_agent_id:
                return member.name
        for member in self.members:
            if member.is_lead:
                return member.name
        return self.lead_agent_id.partition("@")[0]

    def member(self, name: str) -> TeamMember | None:
        for m in self.members:
            if m.name == name:
                return m
        return None

    def member_names(self) -> list[str]:
        return [m.name for m in self.members]

    @classmethod
    def from_dict(cls, raw: dict) -> TeamConfig:
        if not isinstance(raw, dict):
            raise ValueError("Team config must be a JSON object")
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError("Team config requires a name")
        members_raw = raw.get("members") or []
        if not isinstance(members_raw, list):
            raise ValueError("Team config members must be a list")
        return cls(
            name=name,
            description=str(raw.get("description", "")),
            created_at=int(raw.get("createdAt", 0) or 0),
            lead_agent_id=str(raw.get("leadAgentId", "")),
            lead_session_id=str(raw.get("leadSessionId", "")),
            members=[TeamMember.from_dict(m) for m in members_raw if isinstance(m, dict)],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "createdAt": self.created_at,
            "leadAgentId": self.lead_agent_id,
            "leadSessionId": self.lead_session_id,
            "members": [m.to_dict() for m in self.members],
        }


@dataclass
class AgentTask:
    id: str
    subject: str = ""
    description: str = ""
    status: str = TaskStatus.PENDING
    blocks: list[str] = field(default_factory=list)
    blocked_by: list[str] = field(default_factory=list)
    owner: str | None = None
    metadata: dict | None = None

    @property
    def owner_name(self) -> str:
        return self.owner or self.subject

    @property
    def is_blocked(self) -> bool:
        """Display rule: only a pending task with blockers is shown as blocked."""
        return self.status == TaskStatus.PENDING and len(self.blocked_by) > 0

    @classmethod
    def from_dict(cls, raw: dict) -> AgentTask:
        if not isinstance(raw, dict):
            raise ValueError("Task must be a JSON object")
        task_id = raw.get("id")
        if task_id is None or str(task_id) == "":
            raise ValueError("Task requires an id")
        status = str(raw.get("status", TaskStatus.PENDING))
        if status not in TaskStatus.ALL:
            raise ValueError(f"Unknown task status: {status!r}")
        metadata = raw.get("metadata")
        owner = raw.get("owner")
        return cls(
            id=str(task_id),
            subject=str(raw.get("subject", "")),
            description=str(raw.get("description", ""))[:MAX_TASK_DESCRIPTION_CHARS],
            status=status,
            blocks=_str_list(raw.get("blocks")),
            blocked_by=_str_list(raw.get("blockedBy")),
            owner=str(owner) if owner else None,
            metadata=metadata if isinstance(metadata, dict) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "subject": self.subject,
            "description": self.description,
            "status": self.status,
            "blocks": list(self.blocks),
            "blockedBy": list(self.blocked_by),
        }
        if self.owner is not None:
            data["owner"] = self.owner
        if self.metadata is not None:
            data["metadata"] = dict(self.metadata)
        return data


# --- Typed messages ---------------------------------------------------------


@dataclass(frozen=True)
class PermissionRequest:
    request_id: str
    agent_id: str
    tool_name: str
    tool_use_id: str = ""
    description: str = ""
    input: dict = field(default_factory=dict)
    type: str = "permission_request"


@dataclass(frozen=True)
class PermissionResponse:
    request_id: str
    approve: bool
    type: str = "permission_response"


@dataclass(frozen=True)
class IdleNotification:
    sender: str
    timestamp: str = ""
    idle_reason: str | None = None
    type: str = "idle_notification"


@dataclass(frozen=True)
class ShutdownRequest:
    request_id: str
    sender: str
    reason: str = ""
    timestamp: str = ""
    type: str = "shutdown_request"


@dataclass(frozen=True)
class ShutdownApproved:
    request_id: str
    sender: str
    timestamp: str = ""
    pane_id: str = ""
    backend_type: str = ""
    type: str = "shutdown_approved"


@dataclass(frozen=True)
class PlanApprovalRequest:
    sender: str
    request_id: str
    plan_file_path: str = ""
    plan_content: str = ""
    timestamp: str = ""
    type: str = "plan_approval_request"


@dataclass(frozen=True)
class PlanApprovalResponse:
    request_id: str
    approved: bool
    feedback: str | None = None
    timestamp: str = ""
    permission_mode: str | None = None
    type: str = "plan_approval_response"


@dataclass(frozen=True)
class PlainText:
    text: str
    type: str = "plain_text"


TypedMessage = Union[
    PermissionRequest,
    PermissionResponse,
    IdleNotification,
    ShutdownRequest,
    ShutdownApproved,
    PlanApprovalRequest,
    PlanApprovalResponse,
    PlainText,
]


def _s(raw: dict, key: str) -> str:
    value = raw.get(key)
    return "" if value is None else str(value)


def _build_typed(raw: dict) -> TypedMessage | None:
    kind = raw.get("type")
    if kind == "permission_request":
        return PermissionRequest(
            request_id=_s(raw, "request_id"),
            agent_id=_s(raw, "agent_id"),
            tool_name=_s(raw, "tool_name"),
            tool_use_id=_s(raw, "tool_use_id"),
            description=_s(raw, "description"),
            input=raw.get("input") if isinstance(raw.get("input"), dict) else {},
        )
    if kind == "permission_response":
        return PermissionResponse(request_id=_s(raw, "request_id"), approve=bool(raw.get("approve")))
    if kind == "idle_notification":
        return IdleNotification(
            sender=_s(raw, "from"),
            timestamp=_s(raw, "timestamp"),
            idle_reason=raw.get("idleReason"),
        )
    if kind == "shutdown_request":
        return ShutdownRequest(
            request_id=_s(raw, "requestId"),
            sender=_s(raw, "from"),
            reason=_s(raw, "reason"),
            timestamp=_s(raw, "timestamp"),
        )
    if kind == "shutdown_approved":
        return ShutdownApproved(
            request_id=_s(raw, "requestId"),
            sender=_s(raw, "from"),
            timestamp=_s(raw, "timestamp"),
            pane_id=_s(raw, "paneId"),
            backend_type=_s(raw, "backendType"),
        )
    if kind == "plan_approval_request":
        return PlanApprovalRequest(
            sender=_s(raw, "from"),
            request_id=_s(raw, "requestId"),
            plan_file_path=_s(raw, "planFilePath"),
            plan_content=_s(raw, "planContent"),
            timestamp=_s(raw, "timestamp"),
        )
    if kind == "plan_approval_response":
        return PlanApprovalResponse(
            request_id=_s(raw, "requestId"),
            approved=bool(raw.get("approved")),
            feedback=raw.get("feedback"),
            timestamp=_s(raw, "timestamp"),
            permission_mode=raw.get("permissionMode"),
        )
    return None


def parse_typed_message(text: str) -> TypedMessage:
    """Parse an inbox ``text`` field into a typed message.

    Anything that is not a JSON object carrying a known ``type`` is returned
    as :class:`PlainText`.
    """
    stripped = text.strip() if isinstance(text, str) else ""
    if stripped.startswith("{"):
        try:
            parsed = json.loads(stripped)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            typed = _build_typed(parsed)
            if typed is not None:
                return typed
    return PlainText(text=text if isinstance(text, str) else "")


@dataclass
class InboxEntry:
    sender: str
    text: str
    timestamp: str
    summary: str | None = None
    color: str | None = None
    read: bool = False

    @property
    def typed(self) -> TypedMessage:
        return parse_typed_message(self.text)

    @property
    def is_typed(self) -> bool:
        return not isinstance(self.typed, PlainText)

    @classmethod
    def from_dict(cls, raw: dict) -> InboxEntry:
        if not isinstance(raw, dict):
            raise ValueError("Inbox entry must be a JSON object")
        return cls(
            sender=_s(raw, "from"),
            text=_s(raw, "text"),
            timestamp=_s(raw, "timestamp"),
            summary=raw.get("summary"),
            color=raw.get("color"),
            read=bool(raw.get("read", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "from": self.sender,
            "text": self.text,
            "timestamp": self.timestamp,
            "read": self.read,
        }
        if self.summary is not None:
            data["summary"] = self.summary
        if self.color is not None:
            data["color"] = self.color
        return data


def parse_inbox(raw: object) -> list[InboxEntry]:
    if not isinstance(raw, list):
        raise ValueError("Inbox must be a JSON array")
    return [InboxEntry.from_dict(e) for e in raw if isinstance(e, dict)]
