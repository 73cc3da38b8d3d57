from agent_teams_monitor.state.events import (
    EventEmitter,
    MessageReceived,
    ReplayStateChanged,
    TaskUpdated,
    TeamRemoved,
    TeamStateEvent,
    TeamUpdated,
)
from agent_teams_monitor.state.team_state import (
    ReplayState,
    ReplayStatus,
    TeamSnapshot,
    TeamStateManager,
    merge_members,
)

__all__ = [
    "EventEmitter",
    "MessageReceived",
    "ReplayState",
    "ReplayStateChanged",
    "ReplayStatus",
    "TaskUpdated",
    "TeamRemoved",
    "TeamSnapshot",
    "TeamStateEvent",
    "TeamStateManager",
    "TeamUpdated",
    "merge_members",
]
