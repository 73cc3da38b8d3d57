import asyncio
import unittest

from agent_teams_monitor.commands.router import CommandRouter


class CommandRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.calls: list[tuple[str, str]] = []

        def recorder(name: str):
            async def handler(command: str = "") -> None:
                self.calls.append((name, command))

            return handler

        self.router = CommandRouter(
            on_help=recorder("help"),
            on_status=recorder("status"),
            on_refresh=recorder("refresh"),
            on_recordings=recorder("recordings"),
            on_replay=recorder("replay"),
            on_stop=recorder("stop"),
            on_dismiss=recorder("dismiss"),
            on_clean=recorder("clean"),
            on_scope=recorder("scope"),
            on_history=recorder("history"),
            on_prune=recorder("prune"),
            on_unknown=lambda command: self.calls.append(("unknown", command)),
        )

    def test_routes_by_leading_word(self) -> None:
        handled = asyncio.run(self.router.try_handle("  /replay alpha 2  "))
        self.assertTrue(handled)
        self.assertEqual([("replay", "/replay alpha 2")], self.calls)

    def test_prefix_of_longer_word_is_unknown(self) -> None:
        asyncio.run(self.router.try_handle("/statusx"))
        self.assertEqual([("unknown", "/statusx")], self.calls)

    def test_plain_text_is_not_a_command(self) -> None:
        self.assertFalse(asyncio.run(self.router.try_handle("hello")))
        self.assertEqual([], self.calls)

    def test_help(self) -> None:
        asyncio.run(self.router.try_handle("/help"))
        self.assertEqual([("help", "")], self.calls)
        self.assertIn("/prune", self.router.commands)


if __name__ == "__main__":
    unittest.main()
