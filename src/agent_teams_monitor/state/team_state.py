from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

from loguru import logger

from agent_teams_monitor.models import AgentTask, InboxEntry, TeamConfig, TeamMember, timestamp_sort_key
from agent_teams_monitor.state.events import (
    EventEmitter,
    Listener,
    MessageReceived,
    ReplayStateChanged,
    TaskUpdated,
    TeamRemoved,
    TeamUpdated,
)
from agent_teams_monitor.state.lifecycle import (
    derive_agent_lifecycle,
    derive_lifecycle_states,
    derive_team_status,
    effective_task_status,
)


class ReplayStatus:
    PLAYING = "playing"
    COMPLETED = "completed"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ReplayState:
    recording_dir: str
    status: str
    speed: float
    current_frame: int
    total_frames: int
    progress_pct: int


@dataclass(frozen=True)
class TeamSnapshot:
    config: TeamConfig
    tasks: list[AgentTask]
    inboxes: dict[str, list[InboxEntry]]


def merge_members(previous: list[TeamMember], incoming: list[TeamMember]) -> list[TeamMember]:
    """Union of members keyed by name: incoming attributes win, old-only members stay."""
    incoming_by_name = {m.name: m for m in incoming}
    merged: list[TeamMember] = []
    seen: set[str] = set()
    for member in previous:
        merged.append(incoming_by_name.get(member.name, member))
        seen.add(member.name)
    for member in incoming:
        if member.name not in seen:
            merged.append(member)
            seen.add(member.name)
    return merged


def _normalize_path(value: str) -> str:
    return os.path.normcase(str(Path(value).expanduser().resolve())).casefold()


class TeamStateManager:
    """Authoritative in-memory model of every observed team."""

    def __init__(self) -> None:
        self._teams: dict[str, TeamConfig] = {}
        self._tasks: dict[str, dict[str, AgentTask]] = {}
        self._messages: dict[str, dict[str, list[InboxEntry]]] = {}
        self._replay_states: dict[str, ReplayState] = {}
        self._removing: set[str] = set()
        self._workspace_paths: list[str] = []
        self._show_all = False
        self._events = EventEmitter()

    # --- Subscriptions ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    # --- Teams ---

    def update_team(self, name: str, config: TeamConfig) -> None:
        previous = self._teams.get(name)
        if previous is None:
            self._teams[name] = config
        else:
            self._teams[name] = replace(config, members=merge_members(previous.members, config.members))
        self._events.emit(TeamUpdated(name))

    def remove_team(self, name: str) -> None:
        if name not in self._teams and name not in self._tasks and name not in self._messages:
            return
        self._removing.add(name)
        try:
            self._events.emit(TeamRemoved(name))
        finally:
            self._removing.discard(name)
            self._teams.pop(name, None)
            self._tasks.pop(name, None)
            self._messages.pop(name, None)
        logger.debug(f"Removed team {name!r} from state")

    def is_removing(self, name: str) -> bool:
        return name in self._removing

    def get_team(self, name: str) -> TeamConfig | None:
        return self._teams.get(name)

    def get_all_teams(self) -> list[TeamConfig]:
        return list(self._teams.values())

    def get_team_names(self) -> list[str]:
        return list(self._teams.keys())

    def has_teams(self) -> bool:
        return len(self._teams) > 0

    # --- Tasks ---

    def update_task(self, team_name: str, task: AgentTask) -> None:
        self._tasks.setdefault(team_name, {})[task.id] = task
        self._events.emit(TaskUpdated(team_name, task))

    def update_tasks(self, team_name: str, tasks: list[AgentTask]) -> None:
        for task in tasks:
            self.update_task(team_name, task)

    def get_tasks(self, team_name: str) -> list[AgentTask]:
        return list(self._tasks.get(team_name, {}).values())

    def get_task(self, team_name: str, task_id: str) -> AgentTask | None:
        return self._tasks.get(team_name, {}).get(task_id)

    # --- Messages ---

    def set_messages(self, team_name: str, agent_name: str, entries: list[InboxEntry]) -> None:
        self._messages.setdefault(team_name, {})[agent_name] = list(entries)
        self._events.emit(MessageReceived(team_name, agent_name))

    def get_messages(self, team_name: str, agent_name: str | None = None) -> list[InboxEntry]:
        team_msgs = self._messages.get(team_name)
        if not team_msgs:
            return []
        if agent_name is not None:
            return list(team_msgs.get(agent_name, []))
        merged: list[InboxEntry] = []
        for entries in team_msgs.values():
            merged.extend(entries)
        return sorted(merged, key=lambda e: timestamp_sort_key(e.timestamp))

    def get_inboxes(self, team_name: str) -> dict[str, list[InboxEntry]]:
        return {agent: list(entries) for agent, entries in self._messages.get(team_name, {}).items()}

    # --- Derived state ---

    def get_agent_lifecycle(self, team_name: str, agent_name: str) -> str:
        config = self._teams.get(team_name)
        if config is None:
            return "active"
        return derive_agent_lifecycle(config, self._messages.get(team_name, {}), agent_name)

    def get_agent_lifecycle_states(self, team_name: str) -> dict[str, str]:
        config = self._teams.get(team_name)
        if config is None:
            return {}
        return derive_lifecycle_states(config, self._messages.get(team_name, {}))

    def get_effective_task_status(self, team_name: str, task: AgentTask) -> str:
        return effective_task_status(self._teams.get(team_name), self._messages.get(team_name, {}), task)

    def is_task_blocked(self, task: AgentTask) -> bool:
        return task.is_blocked

    def get_team_status(self, team_name: str) -> str | None:
        config = self._teams.get(team_name)
        if config is None:
            return None
        return derive_team_status(
            config,
            self.get_agent_lifecycle_states(team_name),
            self.get_tasks(team_name),
        )

    # --- Workspace filtering ---

    def set_workspace_paths(self, paths: list[str]) -> None:
        self._workspace_paths = [_normalize_path(p) for p in paths if p]

    def set_show_all(self, enabled: bool) -> None:
        self._show_all = enabled
        # Generic event so every view refreshes.
        self._events.emit(TeamUpdated(""))

    @property
    def show_all(self) -> bool:
        return self._show_all

    def _team_matches_workspace(self, config: TeamConfig) -> bool:
        if self._show_all or not self._workspace_paths:
            return True
        for member in config.members:
            if not member.cwd:
                continue
            member_cwd = _normalize_path(member.cwd)
            for root in self._workspace_paths:
                if member_cwd == root or member_cwd.startswith(root.rstrip(os.sep) + os.sep):
                    return True
        return False

    def get_filtered_team_names(self) -> list[str]:
        return [name for name, config in self._teams.items() if self._team_matches_workspace(config)]

    def get_filtered_teams(self) -> list[TeamConfig]:
        return [config for config in self._teams.values() if self._team_matches_workspace(config)]

    def get_filtered_tasks(self) -> dict[str, list[AgentTask]]:
        names = set(self.get_filtered_team_names())
        return {name: list(tasks.values()) for name, tasks in self._tasks.items() if name in names}

    def get_filtered_messages(self) -> dict[str, dict[str, list[InboxEntry]]]:
        names = set(self.get_filtered_team_names())
        return {name: self.get_inboxes(name) for name in self._messages if name in names}

    # --- Replay state ---

    def set_team_replay_state(self, team_name: str, state: ReplayState) -> None:
        self._replay_states[team_name] = state
        self._events.emit(ReplayStateChanged(team_name))

    def get_team_replay_state(self, team_name: str) -> ReplayState | None:
        return self._replay_states.get(team_name)

    def clear_team_replay_state(self, team_name: str) -> None:
        if self._replay_states.pop(team_name, None) is not None:
            self._events.emit(ReplayStateChanged(team_name))

    def is_team_replaying(self, team_name: str) -> bool:
        """True while the replay engine owns this team (any replay state present)."""
        return team_name in self._replay_states

    def is_replay_active(self, team_name: str) -> bool:
        state = self._replay_states.get(team_name)
        return state is not None and state.status == ReplayStatus.PLAYING

    @property
    def replay_mode(self) -> bool:
        return len(self._replay_states) > 0

    # --- Snapshot ---

    def get_snapshot(self, team_name: str) -> TeamSnapshot | None:
        config = self._teams.get(team_name)
        if config is None:
            return None
        return TeamSnapshot(
            config=config,
            tasks=self.get_tasks(team_name),
            inboxes=self.get_inboxes(team_name),
        )

    def dispose(self) -> None:
        self._events.clear()
