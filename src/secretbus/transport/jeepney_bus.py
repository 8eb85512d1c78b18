"""D-Bus transport built on jeepney's asyncio router.

jeepney needs an explicit signature for every outgoing message, so this
module keeps the signature tables for the Secret Service methods and
properties. Variants are wrapped on the way out and unwrapped on the way
in, so the rest of the package only deals in plain Python values.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, suppress
from typing import Any

from jeepney import (
    DBusAddress,
    HeaderFields,
    MatchRule,
    MessageType,
    Properties,
    message_bus,
    new_method_call,
)
from jeepney.io.asyncio import DBusRouter, Proxy, open_dbus_router
from jeepney.io.common import RouterClosed
from jeepney.wrappers import DBusErrorResponse

from secretbus.defines import (
    BUS_NAME,
    COLLECTION_INTERFACE,
    ITEM_INTERFACE,
    PROMPT_INTERFACE,
    SERVICE_INTERFACE,
    SESSION_INTERFACE,
    CollectionMethod,
    DBusError,
    ItemMethod,
    PromptMethod,
    ServiceMethod,
    SessionMethod,
)
from secretbus.exceptions import TransportError
from secretbus.models import Signal
from secretbus.transport.base import SignalStream, Transport

logger = logging.getLogger(__name__)

_SECRET_STRUCT = "(oayays)"

# Input signatures of every method the client calls.
METHOD_SIGNATURES: dict[tuple[str, str], str] = {
    (SERVICE_INTERFACE, ServiceMethod.OPEN_SESSION): "sv",
    (SERVICE_INTERFACE, ServiceMethod.CREATE_COLLECTION): "a{sv}s",
    (SERVICE_INTERFACE, ServiceMethod.SEARCH_ITEMS): "a{ss}",
    (SERVICE_INTERFACE, ServiceMethod.UNLOCK): "ao",
    (SERVICE_INTERFACE, ServiceMethod.LOCK): "ao",
    (SERVICE_INTERFACE, ServiceMethod.GET_SECRETS): "aoo",
    (SERVICE_INTERFACE, ServiceMethod.READ_ALIAS): "s",
    (SERVICE_INTERFACE, ServiceMethod.SET_ALIAS): "so",
    (COLLECTION_INTERFACE, CollectionMethod.DELETE): "",
    (COLLECTION_INTERFACE, CollectionMethod.SEARCH_ITEMS): "a{ss}",
    (COLLECTION_INTERFACE, CollectionMethod.CREATE_ITEM): "a{sv}" + _SECRET_STRUCT + "b",
    (ITEM_INTERFACE, ItemMethod.DELETE): "",
    (ITEM_INTERFACE, ItemMethod.GET_SECRET): "o",
    (ITEM_INTERFACE, ItemMethod.SET_SECRET): _SECRET_STRUCT,
    (SESSION_INTERFACE, SessionMethod.CLOSE): "",
    (PROMPT_INTERFACE, PromptMethod.PROMPT): "s",
    (PROMPT_INTERFACE, PromptMethod.DISMISS): "",
}

# Signatures of writable properties, keyed by the bare property name.
PROPERTY_SIGNATURES: dict[str, str] = {
    "Label": "s",
    "Attributes": "a{ss}",
}


def split_signature(signature: str) -> list[str]:
    """Split a D-Bus signature into its top-level complete types."""
    types: list[str] = []
    i = 0
    while i < len(signature):
        j = i
        while signature[j] == "a":
            j += 1
        if signature[j] in "({":
            depth = 0
            while True:
                if signature[j] in "({":
                    depth += 1
                elif signature[j] in ")}":
                    depth -= 1
                j += 1
                if depth == 0:
                    break
        else:
            j += 1
        types.append(signature[i:j])
        i = j
    return types


def make_variant(value: Any) -> tuple[str, Any]:
    """Wrap a plain value into a jeepney ``(signature, value)`` variant."""
    if isinstance(value, bool):
        return ("b", value)
    if isinstance(value, str):
        return ("s", value)
    if isinstance(value, (bytes, bytearray)):
        return ("ay", bytes(value))
    if isinstance(value, dict) and all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        return ("a{ss}", value)
    raise TypeError(f"cannot wrap {type(value).__name__} in a variant")


def encode_args(signature: str, args: tuple[Any, ...]) -> tuple[Any, ...]:
    """Wrap the variant-typed arguments of a method call."""
    types = split_signature(signature)
    if len(types) != len(args):
        raise TypeError(
            f"signature {signature!r} expects {len(types)} arguments, got {len(args)}"
        )
    encoded: list[Any] = []
    for sig, arg in zip(types, args):
        if sig == "v":
            encoded.append(make_variant(arg))
        elif sig == "a{sv}":
            encoded.append({key: make_variant(val) for key, val in arg.items()})
        else:
            encoded.append(arg)
    return tuple(encoded)


def unwrap_body(signature: str, body: tuple[Any, ...]) -> tuple[Any, ...]:
    """Replace top-level variants in a message body by their values."""
    types = split_signature(signature)
    return tuple(
        value[1] if sig == "v" else value for sig, value in zip(types, body)
    )


def _receiver_task(router: DBusRouter) -> asyncio.Future | None:
    # jeepney runs its receive loop in a private task and has no public
    # hook for its end.
    return getattr(router, "_rcv_task", None)


class _JeepneySignalStream(SignalStream):
    """Signal subscription backed by a router filter queue.

    A ``None`` in the queue marks the end of the stream.
    """

    def __init__(
        self,
        transport: JeepneyTransport,
        rule: MatchRule,
        handle: Any,
        queue: asyncio.Queue,
    ) -> None:
        self._transport = transport
        self._rule = rule
        self._handle = handle
        self._queue = queue
        self._ended = False
        self._released = False

    async def __anext__(self) -> Signal:
        if self._ended:
            raise StopAsyncIteration
        msg = await self._queue.get()
        if msg is None:
            self._ended = True
            raise StopAsyncIteration
        fields = msg.header.fields
        return Signal(
            path=fields.get(HeaderFields.path, ""),
            interface=fields.get(HeaderFields.interface, ""),
            member=fields.get(HeaderFields.member, ""),
            body=unwrap_body(fields.get(HeaderFields.signature, ""), msg.body),
        )

    def end(self) -> None:
        self._queue.put_nowait(None)

    async def close(self) -> None:
        if self._released:
            return
        self._released = True
        self._ended = True
        self._handle.close()
        await self._transport._remove_match(self, self._rule)


class JeepneyTransport(Transport):
    """Secret Service transport over a jeepney asyncio D-Bus router.

    Parameters
    ----------
    router:
        An open jeepney ``DBusRouter``.
    call_timeout:
        Seconds to wait for a method reply before failing with
        :class:`TransportError`. ``None`` waits forever.
    destination:
        Bus name of the Secret Service.
    """

    def __init__(
        self,
        router: DBusRouter,
        call_timeout: float | None = 25.0,
        destination: str = BUS_NAME,
        exit_stack: AsyncExitStack | None = None,
    ) -> None:
        self._router = router
        self._call_timeout = call_timeout
        self._destination = destination
        self._exit_stack = exit_stack
        self._streams: set[_JeepneySignalStream] = set()
        self._watcher: asyncio.Task | None = None
        self._closed = False
        self._lost = False

    @classmethod
    async def connect(
        cls, bus: str = "SESSION", call_timeout: float | None = 25.0
    ) -> JeepneyTransport:
        """Open a router on the given bus (``SESSION`` or ``SYSTEM``)."""
        stack = AsyncExitStack()
        try:
            router = await stack.enter_async_context(open_dbus_router(bus=bus))
        except OSError as exc:
            await stack.aclose()
            raise TransportError(f"cannot connect to the {bus} bus: {exc}") from exc
        logger.debug("Connected to the %s bus", bus)
        return cls(router, call_timeout=call_timeout, exit_stack=stack)

    def _address(self, path: str, interface: str) -> DBusAddress:
        return DBusAddress(path, bus_name=self._destination, interface=interface)

    async def _send(self, msg: Any, what: str) -> tuple[Any, ...]:
        if self._closed:
            raise TransportError(f"{what}: connection closed")
        if self._lost:
            raise TransportError(f"{what}: connection lost")
        try:
            reply = await asyncio.wait_for(
                self._router.send_and_get_reply(msg), timeout=self._call_timeout
            )
        except asyncio.TimeoutError as exc:
            raise TransportError(f"{what}: no reply", DBusError.NO_REPLY) from exc
        except (OSError, RouterClosed) as exc:
            raise TransportError(f"{what}: {exc}") from exc

        if reply.header.message_type == MessageType.error:
            err = DBusErrorResponse(reply)
            raise TransportError(f"{what}: {err.name}: {err.data}", err.name) from err

        signature = reply.header.fields.get(HeaderFields.signature, "")
        return unwrap_body(signature, reply.body)

    async def call(
        self, path: str, interface: str, method: str, *args: Any
    ) -> tuple[Any, ...]:
        try:
            signature = METHOD_SIGNATURES[(interface, method)]
        except KeyError:
            raise TransportError(f"no signature known for {interface}.{method}") from None
        msg = new_method_call(
            self._address(path, interface),
            method,
            signature or None,
            encode_args(signature, args),
        )
        logger.debug("Calling %s.%s on %s", interface, method, path)
        return await self._send(msg, f"{interface}.{method}")

    async def get_property(self, path: str, interface: str, name: str) -> Any:
        msg = Properties(self._address(path, interface)).get(name)
        body = await self._send(msg, f"get {interface}.{name}")
        if len(body) != 1:
            raise TransportError(f"get {interface}.{name}: malformed reply")
        return body[0]

    async def set_property(
        self, path: str, interface: str, name: str, value: Any
    ) -> None:
        try:
            signature = PROPERTY_SIGNATURES[name]
        except KeyError:
            raise TransportError(f"property {interface}.{name} is not writable") from None
        msg = Properties(self._address(path, interface)).set(name, signature, value)
        await self._send(msg, f"set {interface}.{name}")

    async def subscribe(self, interface: str, member: str) -> SignalStream:
        if self._closed or self._lost:
            raise TransportError("subscribe: connection closed")
        rule = MatchRule(type="signal", interface=interface, member=member)
        queue: asyncio.Queue = asyncio.Queue()
        # Route locally before asking the bus, so nothing arrives unrouted.
        handle = self._router.filter(rule, queue=queue)
        stream = _JeepneySignalStream(self, rule, handle, queue)
        try:
            await asyncio.wait_for(
                Proxy(message_bus, self._router).AddMatch(rule),
                timeout=self._call_timeout,
            )
        except (DBusErrorResponse, OSError, RouterClosed, asyncio.TimeoutError) as exc:
            handle.close()
            raise TransportError(f"AddMatch for {interface}.{member} failed: {exc}") from exc
        self._streams.add(stream)
        self._watch_receiver()
        logger.debug("Subscribed to %s.%s", interface, member)
        return stream

    def _watch_receiver(self) -> None:
        if self._watcher is not None:
            return
        receiver = _receiver_task(self._router)
        if receiver is not None:
            self._watcher = asyncio.create_task(self._end_streams_after(receiver))

    async def _end_streams_after(self, receiver: asyncio.Future) -> None:
        """End every open stream once the router stops receiving."""
        await asyncio.wait({receiver})
        if self._closed:
            return
        logger.warning("Bus connection lost, ending %d subscription(s)", len(self._streams))
        self._lost = True
        for stream in list(self._streams):
            stream.end()
        self._streams.clear()

    async def _remove_match(self, stream: _JeepneySignalStream, rule: MatchRule) -> None:
        self._streams.discard(stream)
        if self._closed or self._lost:
            return
        try:
            await asyncio.wait_for(
                Proxy(message_bus, self._router).RemoveMatch(rule),
                timeout=self._call_timeout,
            )
        except (DBusErrorResponse, OSError, RouterClosed, asyncio.TimeoutError):
            # The subscription is already gone locally.
            logger.warning("RemoveMatch failed", exc_info=True)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for stream in list(self._streams):
            stream.end()
        self._streams.clear()
        if self._watcher is not None:
            self._watcher.cancel()
            with suppress(asyncio.CancelledError):
                await self._watcher
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
        logger.debug("Bus connection closed")
