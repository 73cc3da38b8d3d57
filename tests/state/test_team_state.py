import unittest

from agent_teams_monitor.models import AgentTask, TaskStatus
from agent_teams_monitor.simulation.builders import MemberSpec, build_config, build_message
from agent_teams_monitor.state import (
    MessageReceived,
    ReplayState,
    ReplayStatus,
    TaskUpdated,
    TeamRemoved,
    TeamStateManager,
    TeamUpdated,
)
from tests.base import lead_and_workers


class TeamStateManagerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.state = TeamStateManager()
        self.events = []
        self.state.subscribe(self.events.append)

    def test_members_are_never_lost_by_later_descriptor_writes(self) -> None:
        self.state.update_team("alpha", lead_and_workers("alpha", "w1", "w2"))
        self.state.update_team("alpha", lead_and_workers("alpha", "w3"))
        self.state.update_team("alpha", lead_and_workers("alpha"))

        names = self.state.get_team("alpha").member_names()
        self.assertEqual(["team-lead", "w1", "w2", "w3"], names)

    def test_incoming_member_attributes_win(self) -> None:
        self.state.update_team("alpha", build_config("alpha", [MemberSpec("team-lead"), MemberSpec("w1", model="sonnet")]))
        self.state.update_team("alpha", build_config("alpha", [MemberSpec("team-lead"), MemberSpec("w1", model="haiku")]))
        self.assertEqual("haiku", self.state.get_team("alpha").member("w1").model)

    def test_notifications_are_delivered_in_mutation_order(self) -> None:
        self.state.update_team("alpha", lead_and_workers("alpha", "w1"))
        self.state.update_task("alpha", AgentTask(id="1", subject="w1"))
        self.state.set_messages("alpha", "team-lead", [build_message("w1", "hi")])

        self.assertEqual(
            [TeamUpdated, TaskUpdated, MessageReceived],
            [type(e) for e in self.events],
        )

    def test_removal_is_announced_while_content_is_still_readable(self) -> None:
        self.state.update_team("alpha", lead_and_workers("alpha", "w1"))
        self.state.update_task("alpha", AgentTask(id="1", subject="w1"))
        seen = {}

        def on_event(event) -> None:
            if isinstance(event, TeamRemoved):
                seen["removing"] = self.state.is_removing("alpha")
                seen["snapshot"] = self.state.get_snapshot("alpha")

        self.state.subscribe(on_event)
        self.state.remove_team("alpha")

        self.assertTrue(seen["removing"])
        self.assertEqual(1, len(seen["snapshot"].tasks))
        self.assertIsNone(self.state.get_team("alpha"))
        self.assertEqual([], self.state.get_tasks("alpha"))
        self.assertFalse(self.state.is_removing("alpha"))

    def test_removing_unknown_team_is_silent(self) -> None:
        self.state.remove_team("ghost")
        self.assertEqual([], self.events)

    def test_messages_are_merged_by_timestamp(self) -> None:
        late = build_message("w1", "second", timestamp_offset_ms=1000)
        early = build_message("w2", "first")
        self.state.set_messages("alpha", "team-lead", [late])
        self.state.set_messages("alpha", "w1", [early])
        self.assertEqual(["first", "second"], [m.text for m in self.state.get_messages("alpha")])
        self.assertEqual(["second"], [m.text for m in self.state.get_messages("alpha", "team-lead")])

    def test_workspace_filtering_and_show_all(self) -> None:
        self.state.set_workspace_paths(["/work/project"])
        self.state.update_team("inside", lead_and_workers("inside", "w1", cwd="/work/project/sub"))
        self.state.update_team("outside", lead_and_workers("outside", "w1", cwd="/elsewhere"))

        self.assertEqual(["inside"], self.state.get_filtered_team_names())
        self.state.update_task("inside", AgentTask(id="1", subject="w1"))
        self.state.update_task("outside", AgentTask(id="1", subject="w1"))
        self.state.set_messages("outside", "team-lead", [build_message("w1", "hi")])
        self.assertEqual(["inside"], list(self.state.get_filtered_tasks()))
        self.assertEqual({}, self.state.get_filtered_messages())

        self.events.clear()
        self.state.set_show_all(True)
        self.assertEqual(["inside", "outside"], sorted(self.state.get_filtered_team_names()))
        self.assertEqual([TeamUpdated("")], self.events)

    def test_replay_state_ownership(self) -> None:
        self.state.set_team_replay_state(
            "alpha",
            ReplayState(
                recording_dir="/r",
                status=ReplayStatus.STOPPED,
                speed=1.0,
                current_frame=1,
                total_frames=3,
                progress_pct=33,
            ),
        )
        self.assertTrue(self.state.is_team_replaying("alpha"))
        self.assertFalse(self.state.is_replay_active("alpha"))
        self.assertTrue(self.state.replay_mode)

        self.state.clear_team_replay_state("alpha")
        self.assertFalse(self.state.is_team_replaying("alpha"))
        self.assertFalse(self.state.replay_mode)

    def test_failing_listener_does_not_block_others(self) -> None:
        def broken(event) -> None:
            raise RuntimeError("boom")

        received = []
        state = TeamStateManager()
        state.subscribe(broken)
        state.subscribe(received.append)
        state.update_task("alpha", AgentTask(id="1", status=TaskStatus.PENDING))
        self.assertEqual(1, len(received))


if __name__ == "__main__":
    unittest.main()
