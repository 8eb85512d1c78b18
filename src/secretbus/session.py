"""Session handle for org.freedesktop.Secret.Session."""

from __future__ import annotations

import logging

from secretbus.defines import SESSION_INTERFACE, SessionMethod
from secretbus.exceptions import SessionClosedError
from secretbus.transport.base import Transport

logger = logging.getLogger(__name__)


class Session:
    """An open session with the Secret Service.

    Obtain one through :meth:`SecretService.open_session`. The caller owns
    the session and must close it; it can be used as an async context
    manager for that purpose.
    """

    def __init__(self, transport: Transport, path: str) -> None:
        self._transport = transport
        self._path = path
        self._closed = False

    def __repr__(self) -> str:
        return f"Session({self._path!r})"

    @property
    def path(self) -> str:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    def require_open(self) -> str:
        """Return the session path, or raise if the session was closed."""
        if self._closed:
            raise SessionClosedError(f"session {self._path} is closed")
        return self._path

    async def close(self) -> None:
        """Close the session on the service. Closing twice is a no-op."""
        if self._closed:
            return
        await self._transport.call(self._path, SESSION_INTERFACE, SessionMethod.CLOSE)
        self._closed = True
        logger.debug("Closed session %s", self._path)

    async def __aenter__(self) -> Session:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
