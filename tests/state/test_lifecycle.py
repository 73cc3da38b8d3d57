import unittest

from agent_teams_monitor.models import AgentLifecycle, AgentTask, TaskStatus, TeamStatus
from agent_teams_monitor.simulation.builders import build_message, build_task, build_typed_message
from agent_teams_monitor.state import TeamStateManager
from tests.base import lead_and_workers, populated_state


def shutdown_approved(sender: str):
    return build_typed_message(sender, {"type": "shutdown_approved", "requestId": "r1", "from": sender})


def shutdown_request(lead: str = "team-lead"):
    return build_typed_message(lead, {"type": "shutdown_request", "requestId": "r1", "from": lead})


def idle(sender: str):
    return build_typed_message(sender, {"type": "idle_notification", "from": sender})


class AgentLifecycleTests(unittest.TestCase):
    def test_lead_is_always_active(self) -> None:
        state = populated_state("alpha", "w1")
        state.set_messages("alpha", "team-lead", [shutdown_request()])
        self.assertEqual(AgentLifecycle.ACTIVE, state.get_agent_lifecycle("alpha", "team-lead"))

    def test_lifecycle_progression(self) -> None:
        state = populated_state("alpha", "w1")
        self.assertEqual(AgentLifecycle.ACTIVE, state.get_agent_lifecycle("alpha", "w1"))

        state.set_messages("alpha", "team-lead", [idle("w1")])
        self.assertEqual(AgentLifecycle.IDLE, state.get_agent_lifecycle("alpha", "w1"))

        state.set_messages("alpha", "w1", [shutdown_request()])
        self.assertEqual(AgentLifecycle.SHUTTING_DOWN, state.get_agent_lifecycle("alpha", "w1"))

        state.set_messages("alpha", "team-lead", [idle("w1"), shutdown_approved("w1")])
        self.assertEqual(AgentLifecycle.SHUTDOWN, state.get_agent_lifecycle("alpha", "w1"))

    def test_idle_only_counts_when_it_is_the_latest_message(self) -> None:
        state = populated_state("alpha", "w1")
        state.set_messages(
            "alpha",
            "team-lead",
            [idle("w1"), build_message("w1", "back at it", timestamp_offset_ms=1000)],
        )
        self.assertEqual(AgentLifecycle.ACTIVE, state.get_agent_lifecycle("alpha", "w1"))

    def test_latest_message_is_chosen_chronologically_across_precisions(self) -> None:
        state = populated_state("alpha", "w1")
        earlier = build_message("w1", "working")
        earlier.timestamp = "2026-01-01T10:00:01Z"
        later_idle = idle("w1")
        later_idle.timestamp = "2026-01-01T10:00:01.500Z"
        state.set_messages("alpha", "team-lead", [later_idle, earlier])

        self.assertEqual(AgentLifecycle.IDLE, state.get_agent_lifecycle("alpha", "w1"))
        self.assertEqual(["working", later_idle.text], [e.text for e in state.get_messages("alpha")])


class EffectiveStatusTests(unittest.TestCase):
    def test_in_progress_is_promoted_only_after_owner_shutdown_approval(self) -> None:
        state = populated_state("alpha", "w1")
        task = build_task("1", "w1", "Fix it", status=TaskStatus.IN_PROGRESS)
        state.update_task("alpha", task)

        self.assertEqual(TaskStatus.IN_PROGRESS, state.get_effective_task_status("alpha", task))

        state.set_messages("alpha", "team-lead", [shutdown_approved("w2")])
        self.assertEqual(TaskStatus.IN_PROGRESS, state.get_effective_task_status("alpha", task))

        state.set_messages("alpha", "team-lead", [shutdown_approved("w2"), shutdown_approved("w1")])
        self.assertEqual(TaskStatus.COMPLETED, state.get_effective_task_status("alpha", task))

    def test_pending_task_is_not_promoted(self) -> None:
        state = populated_state("alpha", "w1")
        task = build_task("1", "w1", "Later")
        state.set_messages("alpha", "team-lead", [shutdown_approved("w1")])
        self.assertEqual(TaskStatus.PENDING, state.get_effective_task_status("alpha", task))

    def test_explicit_owner_takes_precedence_over_subject(self) -> None:
        state = populated_state("alpha", "w1", "w2")
        task = build_task("1", "w1", "Pair", status=TaskStatus.IN_PROGRESS, owner="w2")
        state.set_messages("alpha", "team-lead", [shutdown_approved("w2")])
        self.assertEqual(TaskStatus.COMPLETED, state.get_effective_task_status("alpha", task))


class BlockedRuleTests(unittest.TestCase):
    def test_only_pending_tasks_with_blockers_are_blocked(self) -> None:
        state = populated_state()
        pending = AgentTask(id="2", status=TaskStatus.PENDING, blocked_by=["1"])
        started = AgentTask(id="2", status=TaskStatus.IN_PROGRESS, blocked_by=["1"])
        free = AgentTask(id="3", status=TaskStatus.PENDING)

        self.assertTrue(state.is_task_blocked(pending))
        self.assertFalse(state.is_task_blocked(started))
        self.assertFalse(state.is_task_blocked(free))


class TeamStatusTests(unittest.TestCase):
    def test_lead_only_team_is_active(self) -> None:
        state = TeamStateManager()
        state.update_team("solo", lead_and_workers("solo"))
        self.assertEqual(TeamStatus.ACTIVE, state.get_team_status("solo"))

    def test_shutdown_with_stale_task_file_is_winding_down(self) -> None:
        state = populated_state("alpha", "w1")
        state.update_task("alpha", build_task("1", "w1", "Fix", status=TaskStatus.IN_PROGRESS))
        state.set_messages("alpha", "team-lead", [shutdown_approved("w1")])
        self.assertEqual(TeamStatus.WINDING_DOWN, state.get_team_status("alpha"))

    def test_completed_once_workers_are_down_and_tasks_settled(self) -> None:
        state = populated_state("alpha", "w1", "w2")
        state.update_task("alpha", build_task("1", "w1", "Fix", status=TaskStatus.COMPLETED))
        state.set_messages("alpha", "team-lead", [shutdown_approved("w1")])
        self.assertEqual(TeamStatus.WINDING_DOWN, state.get_team_status("alpha"))

        state.set_messages("alpha", "team-lead", [shutdown_approved("w1"), shutdown_approved("w2")])
        self.assertEqual(TeamStatus.COMPLETED, state.get_team_status("alpha"))

    def test_unknown_team_has_no_status(self) -> None:
        self.assertIsNone(populated_state().get_team_status("ghost"))


if __name__ == "__main__":
    unittest.main()
