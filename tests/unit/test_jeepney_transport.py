"""Unit tests for the jeepney transport using a stand-in router.

The router is replaced by a small recorder so the tests exercise message
construction, variant handling, error mapping and subscription order
without a running bus.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest
from jeepney import HeaderFields, MessageType
from jeepney.io.common import RouterClosed

from secretbus.defines import (
    COLLECTION_INTERFACE,
    DBusError,
    ITEM_INTERFACE,
    PROMPT_INTERFACE,
    SERVICE_INTERFACE,
    SERVICE_PATH,
    CollectionMethod,
    PromptMethod,
    ServiceMethod,
)
from secretbus.exceptions import ChannelClosed, TransportError
from secretbus.prompt import Prompt, PromptState
from secretbus.transport.jeepney_bus import (
    JeepneyTransport,
    encode_args,
    make_variant,
    split_signature,
    unwrap_body,
)


def _reply(signature: str = "", *body: Any) -> SimpleNamespace:
    fields = {HeaderFields.signature: signature} if signature else {}
    return SimpleNamespace(
        header=SimpleNamespace(message_type=MessageType.method_return, fields=fields),
        body=body,
    )


def _error(name: str, text: str) -> SimpleNamespace:
    return SimpleNamespace(
        header=SimpleNamespace(
            message_type=MessageType.error,
            fields={HeaderFields.error_name: name, HeaderFields.signature: "s"},
        ),
        body=(text,),
    )


def _signal(path: str, interface: str, member: str, signature: str, *body: Any) -> SimpleNamespace:
    return SimpleNamespace(
        header=SimpleNamespace(
            message_type=MessageType.signal,
            fields={
                HeaderFields.path: path,
                HeaderFields.interface: interface,
                HeaderFields.member: member,
                HeaderFields.signature: signature,
            },
        ),
        body=body,
    )


class RecordingRouter:
    """Records sent messages and filter registrations in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []
        self.sent: list[Any] = []
        self.replies: list[Any] = []
        self.handles: list[MagicMock] = []
        self.queues: list[asyncio.Queue] = []
        self.hang = False

    async def send_and_get_reply(self, msg):
        self.sent.append(msg)
        self.events.append(("send", msg.header.fields.get(HeaderFields.member)))
        if self.hang:
            await asyncio.Event().wait()
        if self.replies:
            return self.replies.pop(0)
        return _reply()

    def filter(self, rule, *, queue=None, bufsize=1):
        self.events.append(("filter", rule))
        handle = MagicMock()
        self.handles.append(handle)
        self.queues.append(queue)
        return handle


@pytest.fixture
def router() -> RecordingRouter:
    return RecordingRouter()


@pytest.fixture
def bus(router: RecordingRouter) -> JeepneyTransport:
    return JeepneyTransport(router, call_timeout=1.0)


# ---------------------------------------------------------------------------
# Signature helpers
# ---------------------------------------------------------------------------

class TestSignatures:

    @pytest.mark.parametrize(
        "signature, expected",
        [
            ("", []),
            ("sv", ["s", "v"]),
            ("a{sv}s", ["a{sv}", "s"]),
            ("a{sv}(oayays)b", ["a{sv}", "(oayays)", "b"]),
            ("aoo", ["ao", "o"]),
            ("a{o(oayays)}", ["a{o(oayays)}"]),
        ],
    )
    def test_split(self, signature: str, expected: list[str]) -> None:
        assert split_signature(signature) == expected

    @pytest.mark.parametrize(
        "value, expected",
        [
            (True, ("b", True)),
            ("label", ("s", "label")),
            (b"\x00", ("ay", b"\x00")),
            ({"k": "v"}, ("a{ss}", {"k": "v"})),
        ],
    )
    def test_make_variant(self, value, expected) -> None:
        assert make_variant(value) == expected

    def test_make_variant_rejects_unknown(self) -> None:
        with pytest.raises(TypeError):
            make_variant(3.5)

    def test_encode_wraps_property_dict(self) -> None:
        encoded = encode_args("a{sv}s", ({"org.freedesktop.Secret.Collection.Label": "test"}, ""))
        assert encoded == ({"org.freedesktop.Secret.Collection.Label": ("s", "test")}, "")

    def test_encode_wraps_plain_variant(self) -> None:
        assert encode_args("sv", ("plain", "")) == ("plain", ("s", ""))

    def test_encode_argument_count(self) -> None:
        with pytest.raises(TypeError):
            encode_args("sv", ("plain",))

    def test_unwrap_body(self) -> None:
        assert unwrap_body("vo", (("s", ""), "/s/1")) == ("", "/s/1")


# ---------------------------------------------------------------------------
# Method calls
# ---------------------------------------------------------------------------

class TestCalls:

    @pytest.mark.asyncio
    async def test_open_session_message(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        router.replies.append(_reply("vo", ("s", ""), "/org/freedesktop/secrets/session/s1"))

        body = await bus.call(SERVICE_PATH, SERVICE_INTERFACE, ServiceMethod.OPEN_SESSION, "plain", "")

        assert body == ("", "/org/freedesktop/secrets/session/s1")
        (msg,) = router.sent
        assert msg.header.fields[HeaderFields.path] == SERVICE_PATH
        assert msg.header.fields[HeaderFields.signature] == "sv"
        assert msg.body == ("plain", ("s", ""))

    @pytest.mark.asyncio
    async def test_method_without_arguments(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        router.replies.append(_reply("o", "/"))

        assert await bus.call("/c/1", COLLECTION_INTERFACE, CollectionMethod.DELETE) == ("/",)
        assert HeaderFields.signature not in router.sent[0].header.fields

    @pytest.mark.asyncio
    async def test_unknown_method(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        with pytest.raises(TransportError):
            await bus.call(SERVICE_PATH, SERVICE_INTERFACE, "Frobnicate")
        assert router.sent == []

    @pytest.mark.asyncio
    async def test_error_reply(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        router.replies.append(_error(DBusError.IS_LOCKED, "collection is locked"))

        with pytest.raises(TransportError) as exc_info:
            await bus.call("/c/1", COLLECTION_INTERFACE, CollectionMethod.DELETE)

        assert exc_info.value.dbus_name == DBusError.IS_LOCKED

    @pytest.mark.asyncio
    async def test_timeout(self, router: RecordingRouter) -> None:
        router.hang = True
        bus = JeepneyTransport(router, call_timeout=0.01)

        with pytest.raises(TransportError) as exc_info:
            await bus.call("/c/1", COLLECTION_INTERFACE, CollectionMethod.DELETE)

        assert exc_info.value.dbus_name == DBusError.NO_REPLY

    @pytest.mark.asyncio
    async def test_socket_error(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        async def broken(msg):
            raise ConnectionResetError("reset by peer")

        router.send_and_get_reply = broken  # type: ignore[method-assign]

        with pytest.raises(TransportError):
            await bus.call("/c/1", COLLECTION_INTERFACE, CollectionMethod.DELETE)

    @pytest.mark.asyncio
    async def test_stopped_router(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        async def stopped(msg):
            raise RouterClosed("This DBusRouter has stopped")

        router.send_and_get_reply = stopped  # type: ignore[method-assign]

        with pytest.raises(TransportError) as exc_info:
            await bus.call("/c/1", COLLECTION_INTERFACE, CollectionMethod.DELETE)

        assert exc_info.value.dbus_name is None
        assert isinstance(exc_info.value.__cause__, RouterClosed)

    @pytest.mark.asyncio
    async def test_closed_transport_refuses_calls(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        await bus.close()

        with pytest.raises(TransportError):
            await bus.call("/c/1", COLLECTION_INTERFACE, CollectionMethod.DELETE)
        assert router.sent == []


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

class TestProperties:

    @pytest.mark.asyncio
    async def test_get_unwraps_variant(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        router.replies.append(_reply("v", ("s", "Login")))

        assert await bus.get_property("/c/1", COLLECTION_INTERFACE, "Label") == "Login"
        msg = router.sent[0]
        assert msg.header.fields[HeaderFields.member] == "Get"
        assert msg.body == (COLLECTION_INTERFACE, "Label")

    @pytest.mark.asyncio
    async def test_set_uses_property_signature(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        await bus.set_property("/i/1", ITEM_INTERFACE, "Attributes", {"a": "b"})

        msg = router.sent[0]
        assert msg.header.fields[HeaderFields.member] == "Set"
        assert msg.body == (ITEM_INTERFACE, "Attributes", ("a{ss}", {"a": "b"}))

    @pytest.mark.asyncio
    async def test_set_read_only_property(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        with pytest.raises(TransportError):
            await bus.set_property("/i/1", ITEM_INTERFACE, "Locked", True)
        assert router.sent == []


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------

class TestSubscribe:

    @pytest.mark.asyncio
    async def test_filter_registered_before_add_match(
        self, bus: JeepneyTransport, router: RecordingRouter
    ) -> None:
        await bus.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)

        kinds = [kind for kind, _ in router.events]
        assert kinds == ["filter", "send"]
        assert router.events[1][1] == "AddMatch"
        assert "member='Completed'" in router.sent[0].body[0]

    @pytest.mark.asyncio
    async def test_signal_body_is_unwrapped(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        stream = await bus.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)
        router.queues[0].put_nowait(
            _signal("/p/1", PROMPT_INTERFACE, "Completed", "bv", False, ("ao", ["/c/1"]))
        )

        signal = await stream.__anext__()

        assert signal.path == "/p/1"
        assert signal.member == "Completed"
        assert signal.body == (False, ["/c/1"])

    @pytest.mark.asyncio
    async def test_add_match_failure_releases_filter(
        self, bus: JeepneyTransport, router: RecordingRouter
    ) -> None:
        router.replies.append(_error(DBusError.ACCESS_DENIED, "no"))

        with pytest.raises(TransportError):
            await bus.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)

        router.handles[0].close.assert_called_once()

    @pytest.mark.asyncio
    async def test_close_stream_removes_match(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        stream = await bus.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)

        await stream.close()
        await stream.close()

        router.handles[0].close.assert_called_once()
        assert [m for kind, m in router.events if kind == "send"] == ["AddMatch", "RemoveMatch"]

    @pytest.mark.asyncio
    async def test_closing_transport_ends_streams(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        stream = await bus.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)

        await bus.close()

        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        await stream.close()
        assert [m for kind, m in router.events if kind == "send"] == ["AddMatch"]

    @pytest.mark.asyncio
    async def test_subscribe_after_close(self, bus: JeepneyTransport) -> None:
        await bus.close()

        with pytest.raises(TransportError):
            await bus.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)

    @pytest.mark.asyncio
    async def test_add_match_on_stopped_router(
        self, bus: JeepneyTransport, router: RecordingRouter
    ) -> None:
        async def stopped(msg):
            raise RouterClosed("This DBusRouter has stopped")

        router.send_and_get_reply = stopped  # type: ignore[method-assign]

        with pytest.raises(TransportError):
            await bus.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)
        router.handles[0].close.assert_called_once()

    @pytest.mark.asyncio
    async def test_remove_match_failure_still_releases(
        self, bus: JeepneyTransport, router: RecordingRouter, caplog
    ) -> None:
        stream = await bus.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)
        router.replies.append(_error(DBusError.ACCESS_DENIED, "no"))

        await stream.close()

        router.handles[0].close.assert_called_once()
        assert "RemoveMatch failed" in caplog.text


# ---------------------------------------------------------------------------
# Connection loss
# ---------------------------------------------------------------------------

class TestReceiverStopped:

    @pytest.mark.asyncio
    async def test_streams_end_when_receiver_stops(
        self, bus: JeepneyTransport, router: RecordingRouter
    ) -> None:
        router._rcv_task = asyncio.get_running_loop().create_future()
        stream = await bus.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)

        router._rcv_task.set_result(None)

        with pytest.raises(StopAsyncIteration):
            await asyncio.wait_for(stream.__anext__(), 1)
        await stream.close()
        assert [m for kind, m in router.events if kind == "send"] == ["AddMatch"]

    @pytest.mark.asyncio
    async def test_calls_fail_after_connection_loss(
        self, bus: JeepneyTransport, router: RecordingRouter
    ) -> None:
        router._rcv_task = asyncio.get_running_loop().create_future()
        await bus.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)
        router._rcv_task.set_result(None)
        for _ in range(5):
            await asyncio.sleep(0)

        with pytest.raises(TransportError):
            await bus.call("/c/1", COLLECTION_INTERFACE, CollectionMethod.DELETE)
        with pytest.raises(TransportError):
            await bus.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)

    @pytest.mark.asyncio
    async def test_pending_prompt_sees_channel_closed(
        self, bus: JeepneyTransport, router: RecordingRouter
    ) -> None:
        router._rcv_task = asyncio.get_running_loop().create_future()
        prompt = Prompt(bus, "/org/freedesktop/secrets/prompt/p1")

        task = asyncio.create_task(prompt.wait())
        for _ in range(20):
            await asyncio.sleep(0)
        assert prompt.state is PromptState.REMOTE_INVOKED

        router._rcv_task.set_result(None)

        with pytest.raises(ChannelClosed):
            await asyncio.wait_for(task, 1)
        assert prompt.state is PromptState.FAILED

    @pytest.mark.asyncio
    async def test_close_stops_watching(self, bus: JeepneyTransport, router: RecordingRouter) -> None:
        router._rcv_task = asyncio.get_running_loop().create_future()
        stream = await bus.subscribe(PROMPT_INTERFACE, PromptMethod.COMPLETED)

        await bus.close()

        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert router._rcv_task.done() is False
