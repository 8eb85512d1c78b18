"""Value types exchanged with the Secret Service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Secret:
    """A secret value bound to the session it travels through.

    Mirrors the ``(oayays)`` D-Bus struct. ``parameters`` is empty for the
    ``plain`` algorithm.
    """

    session: str
    value: bytes
    content_type: str = "text/plain"
    parameters: bytes = b""

    def to_wire(self) -> tuple[str, bytes, bytes, str]:
        """Return the struct in D-Bus field order."""
        return (self.session, self.parameters, self.value, self.content_type)


@dataclass(frozen=True)
class Signal:
    """A D-Bus signal delivered through a subscription."""

    path: str
    interface: str
    member: str
    body: tuple[Any, ...] = field(default_factory=tuple)
