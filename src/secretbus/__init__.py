"""secretbus: asyncio client for the freedesktop.org Secret Service."""

from pathlib import Path as _Path

from secretbus.collection import Collection
from secretbus.exceptions import (
    ChannelClosed,
    DecodeError,
    NotFound,
    PromptDismissed,
    SecretServiceError,
    SessionClosedError,
    TransportError,
    UnsupportedAlgorithmError,
)
from secretbus.item import Item
from secretbus.models import Secret
from secretbus.prompt import Prompt, PromptOptions, PromptState
from secretbus.service import SecretService
from secretbus.session import Session


def _read_version() -> str:
    """Read version from the repo-level VERSION file (single source of truth)."""
    for parent in _Path(__file__).resolve().parents:
        candidate = parent / "VERSION"
        if candidate.is_file():
            return candidate.read_text().strip()
    return "0.0.0"


__version__ = _read_version()

__all__ = [
    "ChannelClosed",
    "Collection",
    "DecodeError",
    "Item",
    "NotFound",
    "Prompt",
    "PromptDismissed",
    "PromptOptions",
    "PromptState",
    "Secret",
    "SecretService",
    "SecretServiceError",
    "Session",
    "SessionClosedError",
    "TransportError",
    "UnsupportedAlgorithmError",
]
