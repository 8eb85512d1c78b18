"""Abstract interface for the message bus underneath the client.

The entity handles only ever talk to a :class:`Transport`. Implementations
deal with message framing, variant wrapping and signal routing; values
crossing this boundary are plain Python objects.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from secretbus.models import Signal


class SignalStream(ABC):
    """An open subscription to a signal.

    Iterating yields :class:`Signal` records until the stream is closed,
    either through :meth:`close` or because the transport went away.
    """

    def __aiter__(self) -> AsyncIterator[Signal]:
        return self

    @abstractmethod
    async def __anext__(self) -> Signal:
        """Return the next signal or raise ``StopAsyncIteration`` once closed."""

    @abstractmethod
    async def close(self) -> None:
        """Release the subscription. Safe to call more than once."""


class Transport(ABC):
    """Abstract connection to the Secret Service bus.

    All methods raise :class:`~secretbus.exceptions.TransportError` when the
    underlying bus operation fails.
    """

    @abstractmethod
    async def call(
        self, path: str, interface: str, method: str, *args: Any
    ) -> tuple[Any, ...]:
        """Invoke a remote method and return the reply body.

        Parameters
        ----------
        path:
            Object path of the remote object.
        interface:
            D-Bus interface the method belongs to.
        method:
            Method name without the interface prefix.
        args:
            Positional method arguments as plain Python values.

        Returns
        -------
        tuple:
            The reply body with top-level variants unwrapped.
        """

    @abstractmethod
    async def get_property(self, path: str, interface: str, name: str) -> Any:
        """Read a property and return its unwrapped value."""

    @abstractmethod
    async def set_property(
        self, path: str, interface: str, name: str, value: Any
    ) -> None:
        """Write a property."""

    @abstractmethod
    async def subscribe(self, interface: str, member: str) -> SignalStream:
        """Subscribe to a signal.

        The subscription is active on the bus when this coroutine returns,
        so signals emitted afterwards are never missed.
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Open signal streams stop iterating."""
