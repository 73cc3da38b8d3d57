from __future__ import annotations

from collections.abc import Iterable, Mapping

from agent_teams_monitor.models import (
    AgentLifecycle,
    AgentTask,
    IdleNotification,
    InboxEntry,
    ShutdownApproved,
    ShutdownRequest,
    TaskStatus,
    TeamConfig,
    TeamStatus,
    timestamp_sort_key,
)

Inboxes = Mapping[str, list[InboxEntry]]


def has_shutdown_approval(inboxes: Inboxes, lead_name: str, agent_name: str) -> bool:
    """True when the lead's inbox holds a shutdown_approved from ``agent_name``."""
    for entry in inboxes.get(lead_name, []):
        typed = entry.typed
        if isinstance(typed, ShutdownApproved) and agent_name in (entry.sender, typed.sender):
            return True
    return False


def has_shutdown_request(inboxes: Inboxes, agent_name: str) -> bool:
    return any(isinstance(e.typed, ShutdownRequest) for e in inboxes.get(agent_name, []))


def last_message_from(inboxes: Inboxes, agent_name: str) -> InboxEntry | None:
    latest: InboxEntry | None = None
    for entries in inboxes.values():
        for entry in entries:
            if entry.sender != agent_name:
                continue
            if latest is None or timestamp_sort_key(entry.timestamp) >= timestamp_sort_key(latest.timestamp):
                latest = entry
    return latest


def derive_agent_lifecycle(config: TeamConfig, inboxes: Inboxes, agent_name: str) -> str:
    """Derive a participant's lifecycle from the session's message history.

    Rules are evaluated in priority order; the lead is always active.
    """
    lead_name = config.lead_name
    if agent_name == lead_name:
        return AgentLifecycle.ACTIVE
    if has_shutdown_approval(inboxes, lead_name, agent_name):
        return AgentLifecycle.SHUTDOWN
    if has_shutdown_request(inboxes, agent_name):
        return AgentLifecycle.SHUTTING_DOWN
    latest = last_message_from(inboxes, agent_name)
    if latest is not None and isinstance(latest.typed, IdleNotification):
        return AgentLifecycle.IDLE
    return AgentLifecycle.ACTIVE


def derive_lifecycle_states(config: TeamConfig, inboxes: Inboxes) -> dict[str, str]:
    return {m.name: derive_agent_lifecycle(config, inboxes, m.name) for m in config.members}


def effective_task_status(config: TeamConfig | None, inboxes: Inboxes, task: AgentTask) -> str:
    if task.status == TaskStatus.COMPLETED:
        return TaskStatus.COMPLETED
    if task.status == TaskStatus.IN_PROGRESS and config is not None:
        if has_shutdown_approval(inboxes, config.lead_name, task.owner_name):
            return TaskStatus.COMPLETED
    return task.status


def derive_team_status(
    config: TeamConfig,
    lifecycle_states: Mapping[str, str],
    tasks: Iterable[AgentTask] = (),
) -> str:
    # A team only reads as completed once the task files have caught up with
    # the workers' shutdowns; until then it is winding down.
    lead_name = config.lead_name
    worker_states = [state for name, state in lifecycle_states.items() if name != lead_name]
    if not worker_states:
        return TeamStatus.ACTIVE
    all_shutdown = all(s == AgentLifecycle.SHUTDOWN for s in worker_states)
    tasks_settled = all(t.status == TaskStatus.COMPLETED for t in tasks)
    if all_shutdown and tasks_settled:
        return TeamStatus.COMPLETED
    if any(s in (AgentLifecycle.SHUTTING_DOWN, AgentLifecycle.SHUTDOWN) for s in worker_states):
        return TeamStatus.WINDING_DOWN
    return TeamStatus.ACTIVE
