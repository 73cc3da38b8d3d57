from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Union

from loguru import logger

from agent_teams_monitor.models import AgentTask


@dataclass(frozen=True)
class TeamUpdated:
    team_name: str
    type: str = "team_updated"


@dataclass(frozen=True)
class TeamRemoved:
    team_name: str
    type: str = "team_removed"


@dataclass(frozen=True)
class TaskUpdated:
    team_name: str
    task: AgentTask
    type: str = "task_updated"


@dataclass(frozen=True)
class MessageReceived:
    team_name: str
    agent_name: str
    type: str = "message_received"


@dataclass(frozen=True)
class ReplayStateChanged:
    team_name: str
    type: str = "replay_state_changed"


TeamStateEvent = Union[TeamUpdated, TeamRemoved, TaskUpdated, MessageReceived, ReplayStateChanged]

Listener = Callable[[TeamStateEvent], None]


class EventEmitter:
    """Synchronous fan-out of state change notifications, in emit order."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: TeamStateEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as ex:
                logger.warning(f"State listener failed on {event.type} for {event.team_name!r}: {ex}")

    def clear(self) -> None:
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
