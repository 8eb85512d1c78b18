"""Collection handle for org.freedesktop.Secret.Collection."""

from __future__ import annotations

import logging
from datetime import datetime

from secretbus import privileged
from secretbus.decode import (
    expect_bool,
    expect_object_path,
    expect_object_paths,
    expect_single,
    expect_str,
    expect_timestamp,
)
from secretbus.defines import COLLECTION_INTERFACE, ITEM_INTERFACE, CollectionMethod, ItemMethod
from secretbus.exceptions import NotFound, TransportError
from secretbus.item import Item
from secretbus.models import Secret
from secretbus.prompt import PromptOptions
from secretbus.session import Session
from secretbus.transport.base import Transport

logger = logging.getLogger(__name__)


class Collection:
    """A named, lockable container of secret items.

    Parameters
    ----------
    transport:
        Shared bus transport.
    path:
        Object path of the collection.
    prompt_options:
        Used when a privileged operation on the collection, or on items
        obtained through it, requires a prompt.
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
    ) -> Collection:
        """Return a handle for *path* after checking the collection exists."""
        collection = cls(transport, path, prompt_options)
        try:
            await collection.get_label()
        except TransportError as exc:
            raise NotFound(f"no such collection: {path}") from exc
        return collection

    def __repr__(self) -> str:
        return f"Collection({self._path!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Collection) and other._path == self._path

    def __hash__(self) -> int:
        return hash(("collection", self._path))

    @property
    def path(self) -> str:
        return self._path

    async def _get(self, name: str):
        return await self._transport.get_property(self._path, COLLECTION_INTERFACE, name)

    async def _load_items(self, paths: list[str]) -> list[Item]:
        return [
            await Item.load(self._transport, path, self._prompt_options) for path in paths
        ]

    async def get_label(self) -> str:
        return expect_str(await self._get(CollectionMethod.LABEL))

    async def set_label(self, label: str) -> None:
        await self._transport.set_property(
            self._path, COLLECTION_INTERFACE, CollectionMethod.LABEL, label
        )

    async def is_locked(self) -> bool:
        return expect_bool(await self._get(CollectionMethod.LOCKED))

    async def get_created(self) -> datetime:
        return expect_timestamp(await self._get(CollectionMethod.CREATED))

    async def get_modified(self) -> datetime:
        return expect_timestamp(await self._get(CollectionMethod.MODIFIED))

    async def unlock(self) -> bool:
        """Unlock the collection, prompting if needed."""
        unlocked = await privileged.unlock(
            self._transport, [self._path], self._prompt_options
        )
        return self._path in unlocked

    async def delete(self) -> None:
        """Delete the collection and every item in it, prompting if required."""

        async def call():
            body = await self._transport.call(
                self._path, COLLECTION_INTERFACE, CollectionMethod.DELETE
            )
            return privileged.prompt_only(body)

        await privileged.execute(self._transport, call, options=self._prompt_options)
        logger.debug("Deleted collection %s", self._path)

    async def get_all_items(self) -> list[Item]:
        """Return every item in the collection.

        Fails as a whole if any single item cannot be resolved.
        """
        paths = expect_object_paths(await self._get(CollectionMethod.ITEMS))
        return await self._load_items(paths)

    async def get_item(self, label: str) -> Item:
        """Return the first item whose label equals *label* exactly."""
        for item in await self.get_all_items():
            if await item.get_label() == label:
                return item
        raise NotFound(f"no such item: {label!r}")

    async def search_items(self, attributes: dict[str, str]) -> list[Item]:
        """Return the items whose attributes match all of *attributes*."""
        body = await self._transport.call(
            self._path, COLLECTION_INTERFACE, CollectionMethod.SEARCH_ITEMS, dict(attributes)
        )
        return await self._load_items(expect_object_paths(expect_single(body)))

    async def create_item(
        self,
        session: Session,
        label: str,
        attributes: dict[str, str],
        secret: bytes | str,
        content_type: str = "text/plain",
        replace: bool = False,
    ) -> Item:
        """Create an item in the collection.

        Parameters
        ----------
        session:
            Open session the secret travels through.
        label:
            Display label of the new item.
        attributes:
            Lookup attributes of the new item.
        secret:
            Secret value; text is encoded as UTF-8.
        content_type:
            MIME type of the secret.
        replace:
            Replace an existing item with identical attributes instead of
            adding a second one.
        """
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        envelope = Secret(session=session.require_open(), value=secret, content_type=content_type)
        properties = {
            f"{ITEM_INTERFACE}.{ItemMethod.LABEL}": label,
            f"{ITEM_INTERFACE}.{ItemMethod.ATTRIBUTES}": dict(attributes),
        }

        async def call():
            body = await self._transport.call(
                self._path,
                COLLECTION_INTERFACE,
                CollectionMethod.CREATE_ITEM,
                properties,
                envelope.to_wire(),
                replace,
            )
            return privileged.result_and_prompt(body)

        path = await privileged.execute(
            self._transport, call, expect_object_path, self._prompt_options
        )
        logger.debug("Created item %s in %s", path, self._path)
        return await Item.load(self._transport, path, self._prompt_options)
