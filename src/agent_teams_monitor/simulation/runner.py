from __future__ import annotations

import asyncio
import shutil
import time
from collections.abc import Callable
from pathlib import Path

from loguru import logger

from agent_teams_monitor.json_files import write_json
from agent_teams_monitor.simulation.scenario import (
    AppendInbox,
    DeleteTeam,
    Scenario,
    SimAction,
    WriteConfig,
    WriteInbox,
    WriteTask,
)
from agent_teams_monitor.watchers.readers import CONFIG_FILE_NAME, INBOX_DIR_NAME, read_inbox


class ScenarioRunner:
    """Plays a scenario into a teams/tasks root the way a live session would write it.

    Delays between events are divided by ``speed``; a speed of 0 applies every
    event back to back.
    """

    def __init__(
        self,
        teams_dir: str | Path,
        tasks_dir: str | Path,
        *,
        speed: float = 1.0,
        output: Callable[[str], None] = print,
    ):
        if speed < 0:
            raise ValueError(f"Simulation speed must be >= 0, got {speed}")
        self._teams_dir = Path(teams_dir)
        self._tasks_dir = Path(tasks_dir)
        self._speed = speed
        self._output = output

    def _inbox_path(self, team_name: str, agent_name: str) -> Path:
        return self._teams_dir / team_name / INBOX_DIR_NAME / f"{agent_name}.json"

    async def run(self, scenario: Scenario) -> None:
        start = time.monotonic()
        total = len(scenario.events)
        self._output(f"=== Scenario: {scenario.name} ===")
        self._output(f"  {scenario.description}")
        self._output(f"  Teams: {', '.join(scenario.team_names)}")
        for i, event in enumerate(scenario.events, start=1):
            self._output(f"  [{time.monotonic() - start:.1f}s] [{i}/{total}] {event.label}")
            for action in event.actions:
                self.apply(action)
            if i < total and event.delay_after_ms > 0 and self._speed > 0:
                await asyncio.sleep(event.delay_after_ms / 1000 / self._speed)
        self._output(f"  Scenario {scenario.name!r} complete ({time.monotonic() - start:.1f}s).")

    def apply(self, action: SimAction) -> None:
        if isinstance(action, WriteConfig):
            (self._teams_dir / action.team_name / INBOX_DIR_NAME).mkdir(parents=True, exist_ok=True)
            write_json(self._teams_dir / action.team_name / CONFIG_FILE_NAME, action.config.to_dict())
        elif isinstance(action, WriteTask):
            write_json(self._tasks_dir / action.team_name / f"{action.task.id}.json", action.task.to_dict())
        elif isinstance(action, WriteInbox):
            path = self._inbox_path(action.team_name, action.agent_name)
            write_json(path, [e.to_dict() for e in action.entries])
        elif isinstance(action, AppendInbox):
            # Inboxes are rewritten whole, never appended in place.
            path = self._inbox_path(action.team_name, action.agent_name)
            current = read_inbox(path) if path.is_file() else []
            entries = list(current or [])
            entries.append(action.entry)
            write_json(path, [e.to_dict() for e in entries])
        elif isinstance(action, DeleteTeam):
            shutil.rmtree(self._teams_dir / action.team_name, ignore_errors=True)
            shutil.rmtree(self._tasks_dir / action.team_name, ignore_errors=True)
        else:
            raise TypeError(f"Unknown simulation action: {action!r}")
        logger.debug(f"Simulation applied {type(action).__name__} for {action.team_name!r}")

    def clean(self, scenario: Scenario) -> None:
        for team_name in scenario.team_names:
            self.apply(DeleteTeam(team_name))
