from datetime import UTC, datetime

from agent_teams_monitor.history import SessionHistory, SessionRecord, prune_history
from tests.base import TempDirTestCase


def record(team: str, ended_at: str, **kwargs) -> SessionRecord:
    return SessionRecord(
        team_name=team,
        team_description="",
        started_at=ended_at,
        ended_at=ended_at,
        duration="0m",
        lead="team-lead",
        **kwargs,
    )


class SessionHistoryTests(TempDirTestCase):
    def test_records_are_listed_newest_first(self) -> None:
        history = SessionHistory(self._tmp_dir)
        history.append(record("a", "2026-01-01T00:00:00+00:00"))
        history.append(record("b", "2026-01-02T00:00:00+00:00"))
        history.append(record("a", "2026-01-03T00:00:00+00:00"))

        self.assertEqual(["a", "b", "a"], [r.team_name for r in history.list_records()])
        self.assertEqual(["2026-01-03T00:00:00+00:00"], [r.ended_at for r in history.list_records(team_name="a", limit=1)])

    def test_malformed_lines_are_skipped(self) -> None:
        history = SessionHistory(self._tmp_dir)
        history.append(record("a", "2026-01-01T00:00:00+00:00"))
        with open(history.path, "a", encoding="utf-8") as f:
            f.write("{broken\n")
            f.write('{"version": 1}\n')

        self.assertEqual(["a"], [r.team_name for r in history.list_records()])


class PruneHistoryTests(TempDirTestCase):
    def test_old_rows_and_their_directories_are_removed(self) -> None:
        history = SessionHistory(self._tmp_dir / "history")
        old_recording = self._tmp_dir / "recordings" / "old"
        old_archive = self._tmp_dir / "history" / "2025-01-01_old"
        kept_recording = self._tmp_dir / "recordings" / "new"
        for directory in (old_recording, old_archive, kept_recording):
            directory.mkdir(parents=True)

        history.append(
            record("old", "2025-01-01T00:00:00Z", recording_path=str(old_recording), archive_path=str(old_archive))
        )
        history.append(record("new", "2026-02-25T00:00:00Z", recording_path=str(kept_recording)))

        pruned = prune_history(history, retention_days=30, now=datetime(2026, 3, 1, tzinfo=UTC))

        self.assertEqual(["old"], [r.team_name for r in pruned])
        self.assertEqual(["new"], [r.team_name for r in history.list_records()])
        self.assertFalse(old_recording.exists())
        self.assertFalse(old_archive.exists())
        self.assertTrue(kept_recording.exists())

    def test_nothing_to_prune_leaves_log_alone(self) -> None:
        history = SessionHistory(self._tmp_dir)
        history.append(record("new", "2026-02-28T00:00:00Z"))
        before = history.path.read_text(encoding="utf-8")

        self.assertEqual([], prune_history(history, retention_days=30, now=datetime(2026, 3, 1, tzinfo=UTC)))
        self.assertEqual(before, history.path.read_text(encoding="utf-8"))
