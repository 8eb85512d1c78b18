"""Completion of operations that may require a prompt.

Delete, create-collection, create-item, lock and unlock all reply with a
primary result plus a prompt path. When the prompt path is ``/`` the
operation is already done; otherwise the prompt has to be shown and its
``Completed`` result replaces the primary result.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from secretbus.decode import expect_arity, expect_object_path, expect_object_paths
from secretbus.defines import NO_PROMPT, SERVICE_INTERFACE, SERVICE_PATH, ServiceMethod
from secretbus.prompt import Prompt, PromptOptions
from secretbus.transport.base import Transport

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Returns (primary_result, prompt_path).
PrivilegedCall = Callable[[], Awaitable[tuple[Any, str]]]


def _discard(_: Any) -> None:
    return None


async def execute(
    transport: Transport,
    call: PrivilegedCall,
    decode: Callable[[Any], T] = _discard,
    options: PromptOptions | None = None,
) -> T:
    """Run *call* and complete it through a prompt if the service asks for one.

    Parameters
    ----------
    transport:
        Transport used for the prompt subscription and calls.
    call:
        Coroutine function issuing the remote call and returning
        ``(primary_result, prompt_path)``.
    decode:
        Turns the primary result, or the prompt's delivered result, into
        the operation's return value.
    options:
        Window id and timeout used if a prompt is shown.

    Raises
    ------
    PromptDismissed:
        The user declined the prompt.
    """
    primary, prompt_path = await call()
    prompt_path = expect_object_path(prompt_path)
    if prompt_path == NO_PROMPT:
        return decode(primary)

    options = options or PromptOptions()
    logger.debug("Operation requires prompt %s", prompt_path)
    prompt = Prompt(transport, prompt_path)
    delivered = await prompt.wait(window_id=options.window_id, timeout=options.timeout)
    return decode(delivered)


def result_and_prompt(body: tuple[Any, ...]) -> tuple[Any, str]:
    """Split a ``(result, prompt)`` reply."""
    primary, prompt_path = expect_arity(body, 2)
    return primary, prompt_path


def prompt_only(body: tuple[Any, ...]) -> tuple[None, str]:
    """Adapt a reply carrying only a prompt path, such as ``Delete``."""
    (prompt_path,) = expect_arity(body, 1)
    return None, prompt_path


async def _change_lock(
    transport: Transport,
    method: str,
    paths: Iterable[str],
    options: PromptOptions | None,
) -> list[str]:
    targets = list(paths)
    # Paths the service handled without asking; the prompt delivers the rest.
    immediate: list[str] = []

    async def call() -> tuple[Any, str]:
        primary, prompt_path = result_and_prompt(
            await transport.call(SERVICE_PATH, SERVICE_INTERFACE, method, targets)
        )
        immediate.extend(expect_object_paths(primary))
        return primary, prompt_path

    def merge(result: Any) -> list[str]:
        return list(dict.fromkeys(immediate + expect_object_paths(result)))

    return await execute(transport, call, merge, options)


async def unlock(
    transport: Transport, paths: Iterable[str], options: PromptOptions | None = None
) -> list[str]:
    """Unlock items or collections, returning the paths that were unlocked."""
    return await _change_lock(transport, ServiceMethod.UNLOCK, paths, options)


async def lock(
    transport: Transport, paths: Iterable[str], options: PromptOptions | None = None
) -> list[str]:
    """Lock items or collections, returning the paths that were locked."""
    return await _change_lock(transport, ServiceMethod.LOCK, paths, options)
