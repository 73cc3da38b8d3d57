import asyncio
import json

from agent_teams_monitor.history import SessionArchiver, SessionHistory
from agent_teams_monitor.models import TaskStatus, TeamStatus
from agent_teams_monitor.simulation.builders import (
    MemberSpec,
    build_config,
    build_message,
    build_task,
    build_typed_message,
    fake_uuid,
)
from agent_teams_monitor.simulation.runner import ScenarioRunner
from agent_teams_monitor.simulation.scenario import AppendInbox, Scenario, SimEvent, WriteConfig, WriteInbox, WriteTask
from agent_teams_monitor.simulation.scenarios import (
    LIFECYCLE_TEAM,
    QUICK_TEAM,
    get_scenario,
    lifecycle_session,
    quick_session,
)
from agent_teams_monitor.state import TeamStateManager
from agent_teams_monitor.watchers.file_watcher import FileWatcher
from tests.base import FakeObserver, TempDirTestCase


class BuilderTests(TempDirTestCase):
    def test_fake_uuid_is_deterministic(self) -> None:
        self.assertEqual(fake_uuid("alpha"), fake_uuid("alpha"))
        self.assertNotEqual(fake_uuid("alpha"), fake_uuid("beta"))
        self.assertEqual([8, 4, 4, 4, 12], [len(p) for p in fake_uuid("alpha").split("-")])

    def test_config_shapes_lead_and_workers(self) -> None:
        config = build_config("alpha", [MemberSpec("team-lead"), MemberSpec("w1", color="blue")], created_at=1000)
        lead, worker = config.members
        self.assertEqual("team-lead@alpha", config.lead_agent_id)
        self.assertIsNone(lead.color)
        self.assertEqual("blue", worker.color)
        self.assertEqual("in-process", worker.backend_type)
        self.assertEqual(3000, worker.joined_at)

    def test_task_description_is_capped(self) -> None:
        self.assertEqual(100, len(build_task("1", "w1", "x" * 250).description))


class ScenarioRunnerTests(TempDirTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.teams_dir = self._tmp_dir / "teams"
        self.tasks_dir = self._tmp_dir / "tasks"
        self.runner = ScenarioRunner(self.teams_dir, self.tasks_dir, speed=0, output=lambda _: None)

    def test_append_rewrites_whole_inbox(self) -> None:
        inbox = self.teams_dir / "alpha" / "inboxes" / "team-lead.json"
        self.runner.apply(WriteInbox("alpha", "team-lead", [build_message("w1", "one")]))
        self.runner.apply(AppendInbox("alpha", "team-lead", build_message("w1", "two")))

        with open(inbox, encoding="utf-8") as f:
            self.assertEqual(["one", "two"], [e["text"] for e in json.load(f)])

    def test_quick_session_runs_to_cleanup(self) -> None:
        lines: list[str] = []
        runner = ScenarioRunner(self.teams_dir, self.tasks_dir, speed=0, output=lines.append)

        asyncio.run(runner.run(quick_session()))

        self.assertFalse((self.teams_dir / QUICK_TEAM).exists())
        self.assertFalse((self.tasks_dir / QUICK_TEAM).exists())
        self.assertIn("[5/5] Team cleaned up (disappears)", lines[-2])

    def test_unknown_scenario(self) -> None:
        self.assertEqual("quick", get_scenario("quick").name)
        self.assertEqual("lifecycle", get_scenario("lifecycle").name)
        with self.assertRaises(KeyError):
            get_scenario("nope")

    def test_negative_speed_is_refused(self) -> None:
        with self.assertRaises(ValueError):
            ScenarioRunner(self.teams_dir, self.tasks_dir, speed=-1)


class WatchedScenarioTests(TempDirTestCase):
    """Plays scenarios step by step and checks what the watcher derives after each step."""

    def setUp(self) -> None:
        super().setUp()
        self.teams_dir = self._tmp_dir / "teams"
        self.tasks_dir = self._tmp_dir / "tasks"
        self.runner = ScenarioRunner(self.teams_dir, self.tasks_dir, speed=0, output=lambda _: None)
        self.state = TeamStateManager()
        self.watcher = FileWatcher(self.state, self.teams_dir, self.tasks_dir, observer_factory=FakeObserver)

    def _step(self, event: SimEvent) -> None:
        for action in event.actions:
            self.runner.apply(action)
        self.watcher.full_scan()

    def test_shutdown_approval_winds_team_down_before_task_file_catches_up(self) -> None:
        lead = MemberSpec("team-lead", agent_type="team-lead")
        scenario = Scenario(
            name="shutdown",
            description="worker shuts down with its task still in progress",
            team_names=["alpha"],
            events=[
                SimEvent("lead only", 2000, [WriteConfig("alpha", build_config("alpha", [lead], created_at=1))]),
                SimEvent(
                    "worker joins",
                    2000,
                    [WriteConfig("alpha", build_config("alpha", [lead, MemberSpec("w1", color="blue")], created_at=1))],
                ),
                SimEvent(
                    "task written",
                    2000,
                    [WriteTask("alpha", build_task("1", "w1", "Fix", status=TaskStatus.IN_PROGRESS))],
                ),
                SimEvent(
                    "shutdown approved",
                    0,
                    [
                        AppendInbox(
                            "alpha",
                            "team-lead",
                            build_typed_message("w1", {"type": "shutdown_approved", "requestId": "r1", "from": "w1"}),
                        )
                    ],
                ),
            ],
        )

        statuses = []
        for event in scenario.events:
            self._step(event)
            statuses.append(self.state.get_team_status("alpha"))

        self.assertEqual(
            [TeamStatus.ACTIVE, TeamStatus.ACTIVE, TeamStatus.ACTIVE, TeamStatus.WINDING_DOWN],
            statuses,
        )
        task = self.state.get_task("alpha", "1")
        self.assertEqual(TaskStatus.IN_PROGRESS, task.status)
        self.assertEqual(TaskStatus.COMPLETED, self.state.get_effective_task_status("alpha", task))
        self.assertEqual("blue", self.state.get_team("alpha").member("w1").color)

    def test_quick_session_as_seen_by_the_watcher(self) -> None:
        scenario = quick_session()
        statuses = []
        for event in scenario.events[:-1]:
            self._step(event)
            statuses.append(self.state.get_team_status(QUICK_TEAM))

        self.assertEqual(
            [TeamStatus.ACTIVE, TeamStatus.ACTIVE, TeamStatus.ACTIVE, TeamStatus.COMPLETED],
            statuses,
        )

        self._step(scenario.events[-1])
        self.assertIsNone(self.state.get_team(QUICK_TEAM))

    def test_lifecycle_session_is_archived_with_its_counts(self) -> None:
        history = SessionHistory(self._tmp_dir / "history")
        archiver = SessionArchiver(self.state, history)
        archiver.attach()
        scenario = lifecycle_session()

        blocked_after_planning: list[str] = []
        statuses = []
        for index, event in enumerate(scenario.events[:-1]):
            self._step(event)
            statuses.append(self.state.get_team_status(LIFECYCLE_TEAM))
            if index == 1:
                blocked_after_planning = [
                    t.id for t in self.state.get_tasks(LIFECYCLE_TEAM) if self.state.is_task_blocked(t)
                ]

        self.assertEqual(["2", "3", "4"], sorted(blocked_after_planning))
        self.assertEqual(TeamStatus.COMPLETED, statuses[-1])
        self.assertEqual(TeamStatus.ACTIVE, statuses[-2])
        config = self.state.get_team(LIFECYCLE_TEAM)
        self.assertEqual(["team-lead", "agent-alpha", "agent-beta", "agent-gamma"], config.member_names())
        self.assertTrue(config.member("agent-gamma").plan_mode_required)

        self._step(scenario.events[-1])

        self.assertIsNone(self.state.get_team(LIFECYCLE_TEAM))
        records = history.list_records(team_name=LIFECYCLE_TEAM)
        self.assertEqual(1, len(records))
        stats = records[0].stats
        self.assertEqual(5, stats.total_tasks)
        self.assertEqual(5, stats.completed_tasks)
        self.assertEqual(21, stats.message_count)
        self.assertEqual(1, stats.broadcast_count)
        self.assertEqual(1, stats.plan_approvals)
        self.assertEqual("completed", records[0].outcome)
