from __future__ import annotations

from collections.abc import Awaitable, Callable

Handler = Callable[[str], Awaitable[None]]


class CommandRouter:
    """Dispatches slash commands to the monitor's handlers by their leading word."""

    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_status: Handler,
        on_refresh: Handler,
        on_recordings: Handler,
        on_replay: Handler,
        on_stop: Handler,
        on_dismiss: Handler,
        on_clean: Handler,
        on_scope: Handler,
        on_history: Handler,
        on_prune: Handler,
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._handlers: dict[str, Handler] = {
            "/status": on_status,
            "/refresh": on_refresh,
            "/recordings": on_recordings,
            "/replay": on_replay,
            "/stop": on_stop,
            "/dismiss": on_dismiss,
            "/clean": on_clean,
            "/scope": on_scope,
            "/history": on_history,
            "/prune": on_prune,
        }
        self._on_unknown = on_unknown

    @property
    def commands(self) -> list[str]:
        return ["/help", *self._handlers]

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        name = trimmed.split(maxsplit=1)[0]
        if name == "/help":
            await self._on_help()
            return True
        handler = self._handlers.get(name)
        if handler is not None:
            await handler(trimmed)
            return True

        self._on_unknown(trimmed)
        return True
