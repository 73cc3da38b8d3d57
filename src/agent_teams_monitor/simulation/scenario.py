from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Union

from agent_teams_monitor.models import AgentTask, InboxEntry, TeamConfig


@dataclass(frozen=True)
class WriteConfig:
    team_name: str
    config: TeamConfig


@dataclass(frozen=True)
class WriteTask:
    team_name: str
    task: AgentTask


@dataclass(frozen=True)
class WriteInbox:
    team_name: str
    agent_name: str
    entries: list[InboxEntry]


@dataclass(frozen=True)
class AppendInbox:
    team_name: str
    agent_name: str
    entry: InboxEntry


@dataclass(frozen=True)
class DeleteTeam:
    team_name: str


SimAction = Union[WriteConfig, WriteTask, WriteInbox, AppendInbox, DeleteTeam]


@dataclass
class SimEvent:
    """One step of a scenario: apply ``actions``, then wait ``delay_after_ms``."""

    label: str
    delay_after_ms: int
    actions: list[SimAction] = field(default_factory=list)


@dataclass
class Scenario:
    name: str
    description: str
    team_names: list[str]
    events: list[SimEvent] = field(default_factory=list)


ScenarioFactory = Callable[[], Scenario]
