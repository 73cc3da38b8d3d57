import json
import os
from unittest.mock import patch

from agent_teams_monitor.json_files import WRITE_ATTEMPTS, is_plain_name, write_json
from tests.base import TempDirTestCase


class WriteJsonTests(TempDirTestCase):
    def test_transient_failure_is_retried(self) -> None:
        target = self._tmp_dir / "out" / "data.json"
        real_replace = os.replace
        calls = []

        def flaky_replace(src, dst):
            calls.append(dst)
            if len(calls) == 1:
                raise OSError("file busy")
            real_replace(src, dst)

        with patch("agent_teams_monitor.json_files.os.replace", side_effect=flaky_replace):
            write_json(target, {"ok": True})

        self.assertEqual(2, len(calls))
        with open(target, encoding="utf-8") as f:
            self.assertEqual({"ok": True}, json.load(f))

    def test_persistent_failure_is_raised_after_last_attempt(self) -> None:
        with patch("agent_teams_monitor.json_files.os.replace", side_effect=OSError("disk full")) as replace:
            with self.assertRaises(OSError):
                write_json(self._tmp_dir / "data.json", [])
        self.assertEqual(WRITE_ATTEMPTS, replace.call_count)


class PlainNameTests(TempDirTestCase):
    def test_single_components_only(self) -> None:
        self.assertTrue(is_plain_name("team-lead.json"))
        self.assertTrue(is_plain_name("sim-quick"))
        for name in ("", ".", "..", "../x", "a/b", "/abs"):
            with self.subTest(name=name):
                self.assertFalse(is_plain_name(name))
