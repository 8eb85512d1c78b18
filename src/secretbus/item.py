"""Item handle for org.freedesktop.Secret.Item."""

from __future__ import annotations

import logging
from datetime import datetime

from secretbus import privileged
from secretbus.decode import (
    expect_attributes,
    expect_bool,
    expect_secret,
    expect_single,
    expect_str,
    expect_timestamp,
)
from secretbus.defines import ITEM_INTERFACE, ItemMethod
from secretbus.exceptions import NotFound, TransportError
from secretbus.models import Secret
from secretbus.prompt import PromptOptions
from secretbus.session import Session
from secretbus.transport.base import Transport

logger = logging.getLogger(__name__)


class Item:
    """A secret item stored in a collection.

    Parameters
    ----------
    transport:
        Shared bus transport.
    path:
        Object path of the item.
    prompt_options:
        Used when deleting or unlocking the item requires a prompt.
    """

    def __init__(
        self,
        transport: Transport,
        path: str,
        prompt_options: PromptOptions | None = None,
    ) -> None:
        self._transport = transport
        self._path = path
        self._prompt_options = prompt_options or PromptOptions()

    @classmethod
    async def load(
        cls,
        transport: Transport,
        path: str,
        prompt_options: PromptOptions | None = None,
    ) -> Item:
        """Return a handle for *path* after checking the item exists."""
        item = cls(transport, path, prompt_options)
        try:
            await item.get_label()
        except TransportError as exc:
            raise NotFound(f"no such item: {path}") from exc
        return item

    def __repr__(self) -> str:
        return f"Item({self._path!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Item) and other._path == self._path

    def __hash__(self) -> int:
        return hash(("item", self._path))

    @property
    def path(self) -> str:
        return self._path

    async def _get(self, name: str):
        return await self._transport.get_property(self._path, ITEM_INTERFACE, name)

    async def is_locked(self) -> bool:
        return expect_bool(await self._get(ItemMethod.LOCKED))

    async def unlock(self) -> bool:
        """Unlock the item, prompting if needed. Returns True if it is now unlocked."""
        unlocked = await privileged.unlock(
            self._transport, [self._path], self._prompt_options
        )
        return self._path in unlocked

    async def get_attributes(self) -> dict[str, str]:
        return expect_attributes(await self._get(ItemMethod.ATTRIBUTES))

    async def set_attributes(self, attributes: dict[str, str]) -> None:
        await self._transport.set_property(
            self._path, ITEM_INTERFACE, ItemMethod.ATTRIBUTES, dict(attributes)
        )

    async def get_label(self) -> str:
        return expect_str(await self._get(ItemMethod.LABEL))

    async def set_label(self, label: str) -> None:
        await self._transport.set_property(self._path, ITEM_INTERFACE, ItemMethod.LABEL, label)

    async def get_created(self) -> datetime:
        return expect_timestamp(await self._get(ItemMethod.CREATED))

    async def get_modified(self) -> datetime:
        return expect_timestamp(await self._get(ItemMethod.MODIFIED))

    async def delete(self) -> None:
        """Delete the item, prompting if the service requires it."""

        async def call():
            body = await self._transport.call(self._path, ITEM_INTERFACE, ItemMethod.DELETE)
            return privileged.prompt_only(body)

        await privileged.execute(self._transport, call, options=self._prompt_options)
        logger.debug("Deleted item %s", self._path)

    async def get_secret(self, session: Session) -> Secret:
        """Retrieve the item's secret through *session*."""
        body = await self._transport.call(
            self._path, ITEM_INTERFACE, ItemMethod.GET_SECRET, session.require_open()
        )
        return expect_secret(expect_single(body))

    async def set_secret(
        self,
        session: Session,
        value: bytes | str,
        content_type: str = "text/plain",
    ) -> None:
        """Replace the item's secret."""
        if isinstance(value, str):
            value = value.encode("utf-8")
        secret = Secret(session=session.require_open(), value=value, content_type=content_type)
        await self._transport.call(
            self._path, ITEM_INTERFACE, ItemMethod.SET_SECRET, secret.to_wire()
        )
