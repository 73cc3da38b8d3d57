import asyncio

from agent_teams_monitor.models import TaskStatus
from agent_teams_monitor.simulation.builders import build_message, build_task
from agent_teams_monitor.simulation.runner import ScenarioRunner
from agent_teams_monitor.simulation.scenario import AppendInbox, DeleteTeam, WriteConfig, WriteTask
from agent_teams_monitor.state import ReplayState, ReplayStatus, TeamStateManager
from agent_teams_monitor.watchers.file_watcher import TASKS, TEAMS, FileWatcher
from tests.base import FakeObserver, TempDirTestCase, lead_and_workers


class FileWatcherTests(TempDirTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.teams_dir = self._tmp_dir / "teams"
        self.tasks_dir = self._tmp_dir / "tasks"
        self.runner = ScenarioRunner(self.teams_dir, self.tasks_dir, speed=0, output=lambda _: None)
        self.state = TeamStateManager()
        self.observers: list[FakeObserver] = []

    def _make_watcher(self, state: TeamStateManager | None = None, **kwargs) -> FileWatcher:
        def factory() -> FakeObserver:
            observer = FakeObserver()
            self.observers.append(observer)
            return observer

        return FileWatcher(
            state or self.state,
            self.teams_dir,
            self.tasks_dir,
            observer_factory=factory,
            **kwargs,
        )

    def _write_session(self) -> None:
        self.runner.apply(WriteConfig("alpha", lead_and_workers("alpha", "w1")))
        self.runner.apply(WriteTask("alpha", build_task("1", "w1", "Fix", status=TaskStatus.IN_PROGRESS)))
        self.runner.apply(WriteTask("alpha", build_task("2", "w1", "Test", blocked_by=["1"])))
        self.runner.apply(AppendInbox("alpha", "team-lead", build_message("w1", "on it")))

    def test_full_scan_matches_fresh_read(self) -> None:
        watcher = self._make_watcher()
        self._write_session()
        watcher.full_scan()

        self.runner.apply(WriteConfig("alpha", lead_and_workers("alpha", "w1", "w2")))
        self.runner.apply(WriteTask("alpha", build_task("1", "w1", "Fix", status=TaskStatus.COMPLETED)))
        self.runner.apply(AppendInbox("alpha", "team-lead", build_message("w2", "joined")))
        watcher.full_scan()

        fresh = TeamStateManager()
        self._make_watcher(fresh).full_scan()

        self.assertEqual(fresh.get_team("alpha"), self.state.get_team("alpha"))
        self.assertEqual(
            [t.to_dict() for t in sorted(fresh.get_tasks("alpha"), key=lambda t: t.id)],
            [t.to_dict() for t in sorted(self.state.get_tasks("alpha"), key=lambda t: t.id)],
        )
        self.assertEqual(fresh.get_inboxes("alpha"), self.state.get_inboxes("alpha"))

    def test_missing_roots_mean_zero_teams(self) -> None:
        watcher = self._make_watcher()
        watcher.full_scan()
        self.assertFalse(self.state.has_teams())

    def test_single_file_changes_update_state(self) -> None:
        watcher = self._make_watcher()
        self._write_session()

        watcher.handle_file_change(self.teams_dir / "alpha" / "config.json", TEAMS)
        watcher.handle_file_change(self.teams_dir / "alpha" / "inboxes" / "team-lead.json", TEAMS)
        watcher.handle_file_change(self.tasks_dir / "alpha" / "1.json", TASKS)

        self.assertEqual(["team-lead", "w1"], self.state.get_team("alpha").member_names())
        self.assertEqual(1, len(self.state.get_messages("alpha", "team-lead")))
        self.assertEqual(["1"], [t.id for t in self.state.get_tasks("alpha")])

    def test_lock_and_partial_files_are_ignored(self) -> None:
        watcher = self._make_watcher()
        task_dir = self.tasks_dir / "alpha"
        task_dir.mkdir(parents=True)
        (task_dir / ".lock").write_text("", encoding="utf-8")
        (task_dir / "3.json").write_text('{"id": "3", "status": ', encoding="utf-8")

        watcher.handle_file_change(task_dir / ".lock", TASKS)
        watcher.handle_file_change(task_dir / "3.json", TASKS)
        watcher.scan_tasks_dir()

        self.assertEqual([], self.state.get_tasks("alpha"))

    def test_deleted_team_directory_removes_team(self) -> None:
        watcher = self._make_watcher()
        self._write_session()
        watcher.full_scan()
        removed = []
        self.state.subscribe(lambda e: removed.append(e.team_name) if e.type == "team_removed" else None)

        self.runner.apply(DeleteTeam("alpha"))
        watcher.handle_file_change(self.teams_dir / "alpha" / "config.json", TEAMS)

        self.assertEqual(["alpha"], removed)
        self.assertIsNone(self.state.get_team("alpha"))

    def test_rescan_removes_teams_missing_on_disk(self) -> None:
        watcher = self._make_watcher()
        self._write_session()
        watcher.full_scan()
        self.runner.apply(DeleteTeam("alpha"))
        self.teams_dir.mkdir(parents=True, exist_ok=True)

        watcher.full_scan()

        self.assertFalse(self.state.has_teams())

    def test_debounce_coalesces_bursts_per_path(self) -> None:
        watcher = self._make_watcher(debounce_ms=20, directory_poll_ms=60_000, full_scan_ms=60_000)
        config_path = self.teams_dir / "alpha" / "config.json"
        reads = []

        async def scenario() -> None:
            await watcher.start()
            self.state.subscribe(lambda e: reads.append(e))
            self._write_session()
            for _ in range(3):
                watcher.on_raw_change(config_path, TEAMS)
            self.assertEqual(1, watcher.pending_reads)
            await asyncio.sleep(0.1)
            self.assertEqual(0, watcher.pending_reads)
            await watcher.dispose()

        asyncio.run(scenario())

        self.assertEqual(1, len([e for e in reads if e.type == "team_updated"]))
        self.assertIsNotNone(self.state.get_team("alpha"))

    def test_directory_poll_attaches_and_detaches(self) -> None:
        watcher = self._make_watcher(directory_poll_ms=60_000, full_scan_ms=60_000)

        async def scenario() -> None:
            await watcher.start()
            self.assertFalse(watcher.is_watching)

            self._write_session()
            watcher.poll_for_directories()
            self.assertTrue(watcher.is_watching)
            self.assertIsNotNone(self.state.get_team("alpha"))

            self.runner.apply(DeleteTeam("alpha"))
            self.teams_dir.rmdir()
            watcher.poll_for_directories()
            self.assertIsNone(self.state.get_team("alpha"))
            await watcher.dispose()

        asyncio.run(scenario())

        self.assertEqual(2, len(self.observers))
        self.assertTrue(all(o.started and o.stopped for o in self.observers))

    def test_updates_for_replayed_team_are_suppressed(self) -> None:
        watcher = self._make_watcher()
        self.state.set_team_replay_state(
            "alpha",
            ReplayState(recording_dir="/r", status=ReplayStatus.PLAYING, speed=1.0, current_frame=0, total_frames=1, progress_pct=0),
        )
        self._write_session()
        watcher.full_scan()
        watcher.handle_file_change(self.teams_dir / "alpha" / "config.json", TEAMS)

        self.assertIsNone(self.state.get_team("alpha"))
        self.assertEqual([], self.state.get_tasks("alpha"))

    def test_clean_requires_confirmation(self) -> None:
        watcher = self._make_watcher()
        self._write_session()
        watcher.full_scan()

        with self.assertRaises(ValueError):
            watcher.clean_team("alpha")
        self.assertTrue((self.teams_dir / "alpha").is_dir())

        with self.assertRaises(ValueError):
            watcher.clean_team("..", confirmed=True)

        watcher.clean_team("alpha", confirmed=True)
        self.assertFalse((self.teams_dir / "alpha").exists())
        self.assertFalse((self.tasks_dir / "alpha").exists())
        self.assertIsNone(self.state.get_team("alpha"))
