"""
Dropped-connection detection for in-flight page requests.
"""

from typing import Awaitable, Callable

from shared.logging import get_logger

DisconnectProbe = Callable[[], Awaitable[bool]]


class ConnectionGuard:
    """Reports whether the client behind a request has gone away.

    The probe is Starlette's ``Request.is_disconnected``, which polls the
    ASGI receive channel without blocking. Once a disconnect is seen the
    guard stays tripped for the rest of the request.
    """

    def __init__(self, probe: DisconnectProbe):
        self._probe = probe
        self._dropped = False
        self.logger = get_logger("renderer.connection_guard")

    @classmethod
    def for_request(cls, request) -> "ConnectionGuard":
        return cls(request.is_disconnected)

    @property
    def dropped(self) -> bool:
        return self._dropped

    async def is_dropped(self) -> bool:
        if self._dropped:
            return True
        if await self._probe():
            self._dropped = True
            self.logger.info("Client connection dropped")
        return self._dropped


class AlwaysConnected(ConnectionGuard):
    """Guard for callers that have no live connection to watch."""

    def __init__(self):
        super().__init__(self._never)

    @staticmethod
    async def _never() -> bool:
        return False
