"""Prompt handle and completion coordination.

Privileged operations may return the path of a prompt object instead of
completing immediately. Completing such an operation means:

1. subscribing to ``org.freedesktop.Secret.Prompt.Completed``,
2. calling ``Prompt.Prompt(window_id)`` on the prompt object,
3. waiting for the ``Completed`` signal emitted by *that* prompt.

The subscription must exist before step 2, otherwise a service that
completes quickly emits the signal before anyone listens and the caller
waits forever. Other prompts may complete on the same bus at the same
time, so the listener filters signals by object path.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from dataclasses import dataclass
from typing import Any

from secretbus.decode import expect_arity, expect_bool
from secretbus.defines import PROMPT_INTERFACE, PromptMethod
from secretbus.exceptions import ChannelClosed, PromptDismissed, SecretServiceError
from secretbus.transport.base import SignalStream, Transport

logger = logging.getLogger(__name__)


class PromptState(str, enum.Enum):
    IDLE = "idle"
    AWAITING_SUBSCRIPTION = "awaiting_subscription"
    SUBSCRIBED = "subscribed"
    REMOTE_INVOKED = "remote_invoked"
    COMPLETED = "completed"
    DISMISSED = "dismissed"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {PromptState.COMPLETED, PromptState.DISMISSED, PromptState.FAILED}
)


@dataclass(frozen=True)
class PromptOptions:
    """How prompts raised by a handle's privileged operations are shown.

    Parameters
    ----------
    window_id:
        Platform-specific window handle the service uses to parent its
        dialog. Empty lets the service decide.
    timeout:
        Seconds to wait for the user before dismissing the prompt.
        ``None`` waits indefinitely.
    """

    window_id: str = ""
    timeout: float | None = None


def decode_completion(body: tuple[Any, ...]) -> tuple[bool, Any]:
    """Decode the ``(dismissed, result)`` body of a ``Completed`` signal."""
    dismissed, result = expect_arity(body, 2)
    return expect_bool(dismissed), result


def _settle(outcome: asyncio.Future, result: Any = None, exc: BaseException | None = None) -> None:
    if outcome.done():
        return
    if exc is not None:
        outcome.set_exception(exc)
    else:
        outcome.set_result(result)


class Prompt:
    """A pending confirmation step on the Secret Service.

    A prompt supports one :meth:`wait` over its lifetime; it cannot be
    reused once it has completed, been dismissed or failed.
    """

    def __init__(self, transport: Transport, path: str) -> None:
        self._transport = transport
        self._path = path
        self._state = PromptState.IDLE

    def __repr__(self) -> str:
        return f"Prompt({self._path!r}, state={self._state.value})"

    @property
    def path(self) -> str:
        return self._path

    @property
    def state(self) -> PromptState:
        return self._state

    def _transition(self, state: PromptState) -> None:
        logger.debug("Prompt %s: %s -> %s", self._path, self._state.value, state.value)
        self._state = state

    async def dismiss(self) -> None:
        """Ask the service to dismiss the prompt."""
        await self._transport.call(self._path, PROMPT_INTERFACE, PromptMethod.DISMISS)

    async def wait(self, window_id: str = "", timeout: float | None = None) -> Any:
        """Show the prompt and wait until the service reports completion.

        Parameters
        ----------
        window_id:
            Window handle passed to ``Prompt.Prompt``.
        timeout:
            Seconds to wait for completion. ``None`` waits forever. On
            timeout the prompt is dismissed and ``asyncio.TimeoutError``
            is raised.

        Returns
        -------
        Any:
            The ``result`` value of the ``Completed`` signal.

        Raises
        ------
        PromptDismissed:
            The user declined.
        ChannelClosed:
            The signal stream closed before the prompt completed.
        DecodeError:
            The ``Completed`` signal had an unexpected shape.
        TransportError:
            Subscribing or calling ``Prompt.Prompt`` failed.
        """
        if self._state in TERMINAL_STATES:
            raise RuntimeError(f"prompt {self._path} has already finished")
        if self._state is not PromptState.IDLE:
            raise RuntimeError(f"prompt {self._path} is already being waited on")

        self._transition(PromptState.AWAITING_SUBSCRIPTION)
        try:
            stream = await self._transport.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)
        except BaseException:
            self._transition(PromptState.FAILED)
            raise
        self._transition(PromptState.SUBSCRIBED)

        outcome: asyncio.Future = asyncio.get_running_loop().create_future()
        listener = asyncio.create_task(self._listen(stream, outcome))
        try:
            await self._transport.call(
                self._path, PROMPT_INTERFACE, PromptMethod.PROMPT, window_id
            )
            self._transition(PromptState.REMOTE_INVOKED)
            result = await asyncio.wait_for(outcome, timeout)
        except PromptDismissed:
            self._transition(PromptState.DISMISSED)
            raise
        except asyncio.TimeoutError:
            self._transition(PromptState.FAILED)
            logger.warning("Prompt %s timed out after %ss, dismissing", self._path, timeout)
            await self._dismiss_after_timeout()
            raise
        except BaseException:
            self._transition(PromptState.FAILED)
            raise
        finally:
            listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await listener
            await stream.close()

        self._transition(PromptState.COMPLETED)
        return result

    async def _dismiss_after_timeout(self) -> None:
        try:
            await self.dismiss()
        except SecretServiceError:
            logger.warning("Could not dismiss prompt %s", self._path, exc_info=True)

    async def _listen(self, stream: SignalStream, outcome: asyncio.Future) -> None:
        """Resolve *outcome* from the first ``Completed`` signal for this prompt."""
        try:
            async for signal in stream:
                if signal.path != self._path:
                    logger.debug("Ignoring completion of unrelated prompt %s", signal.path)
                    continue
                dismissed, result = decode_completion(signal.body)
                if dismissed:
                    _settle(outcome, exc=PromptDismissed(self._path))
                else:
                    _settle(outcome, result)
                return
            _settle(
                outcome,
                exc=ChannelClosed(f"signal stream closed before {self._path} completed"),
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            _settle(outcome, exc=exc)
