"""Exception hierarchy for the Secret Service client.

Every error raised by this package derives from :class:`SecretServiceError`.
A dismissed prompt is reported through :class:`PromptDismissed`, which is an
expected outcome rather than a failure of the bus or of the service.
"""

from __future__ import annotations


class SecretServiceError(Exception):
    """Base class for all errors raised by secretbus."""


class TransportError(SecretServiceError):
    """A D-Bus method call or property access failed.

    Parameters
    ----------
    message:
        Human readable description.
    dbus_name:
        The D-Bus error name returned by the remote side, if any.
    """

    def __init__(self, message: str, dbus_name: str | None = None) -> None:
        super().__init__(message)
        self.dbus_name = dbus_name


class DecodeError(SecretServiceError):
    """A reply did not have the shape the protocol prescribes."""


class NotFound(SecretServiceError):
    """A lookup by label or alias matched nothing, or an object is gone."""


class PromptDismissed(SecretServiceError):
    """The user declined the confirmation prompt."""

    def __init__(self, prompt_path: str) -> None:
        super().__init__(f"prompt dismissed: {prompt_path}")
        self.prompt_path = prompt_path


class ChannelClosed(SecretServiceError):
    """The signal stream closed while a prompt was pending."""


class SessionClosedError(SecretServiceError):
    """A session was used after it had been closed."""


class UnsupportedAlgorithmError(SecretServiceError):
    """A session algorithm other than ``plain`` was requested."""
