"""Entry point to the Secret Service (org.freedesktop.Secret.Service).

:class:`SecretService` opens sessions, finds collections, resolves aliases
and runs the service-level privileged operations. It keeps no cache: every
lookup asks the service again.
"""

from __future__ import annotations

import logging
from typing import Iterable, Sequence, Union

from secretbus import privileged
from secretbus.config import Settings
from secretbus.decode import (
    expect_arity,
    expect_object_path,
    expect_object_paths,
    expect_secret_map,
    expect_single,
)
from secretbus.defines import (
    ALGORITHM_DH,
    ALGORITHM_PLAIN,
    COLLECTION_INTERFACE,
    DEFAULT_COLLECTION,
    NULL_PATH,
    SERVICE_INTERFACE,
    SERVICE_PATH,
    SESSION_COLLECTION,
    CollectionMethod,
    ServiceMethod,
)
from secretbus.collection import Collection
from secretbus.exceptions import NotFound, UnsupportedAlgorithmError
from secretbus.item import Item
from secretbus.models import Secret
from secretbus.prompt import PromptOptions
from secretbus.session import Session
from secretbus.transport.base import Transport

logger = logging.getLogger(__name__)

PathLike = Union[str, Item, Collection]


def _path_of(target: PathLike) -> str:
    return target if isinstance(target, str) else target.path


class SecretService:
    """Client for the Secret Service.

    Parameters
    ----------
    transport:
        Bus transport. The service only closes it if it opened it
        (see :meth:`connect`).
    prompt_options:
        Window id and timeout for prompts; inherited by every collection
        and item handle the service returns.
    """

    def __init__(
        self,
        transport: Transport,
        prompt_options: PromptOptions | None = None,
        owns_transport: bool = False,
    ) -> None:
        self._transport = transport
        self._prompt_options = prompt_options or PromptOptions()
        self._owns_transport = owns_transport

    @classmethod
    async def connect(cls, settings: Settings | None = None) -> SecretService:
        """Connect to the Secret Service on the configured bus."""
        from secretbus.transport.jeepney_bus import JeepneyTransport

        settings = settings or Settings()
        transport = await JeepneyTransport.connect(
            bus=settings.bus.name, call_timeout=settings.bus.call_timeout
        )
        options = PromptOptions(
            window_id=settings.prompt.window_id, timeout=settings.prompt.timeout
        )
        return cls(transport, prompt_options=options, owns_transport=True)

    async def close(self) -> None:
        if self._owns_transport:
            await self._transport.close()

    async def __aenter__(self) -> SecretService:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def transport(self) -> Transport:
        return self._transport

    async def _call(self, method: str, *args):
        return await self._transport.call(SERVICE_PATH, SERVICE_INTERFACE, method, *args)

    async def _load_items(self, paths: list[str]) -> list[Item]:
        return [
            await Item.load(self._transport, path, self._prompt_options) for path in paths
        ]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def open_session(self, algorithm: str = ALGORITHM_PLAIN) -> Session:
        """Open a session for transferring secrets.

        Only the ``plain`` algorithm is supported.
        """
        if algorithm != ALGORITHM_PLAIN:
            if algorithm == ALGORITHM_DH:
                raise UnsupportedAlgorithmError(f"{algorithm} is not implemented")
            raise UnsupportedAlgorithmError(f"unknown algorithm: {algorithm}")

        _output, path = expect_arity(
            await self._call(ServiceMethod.OPEN_SESSION, algorithm, ""), 2
        )
        session = Session(self._transport, expect_object_path(path))
        logger.debug("Opened %s session %s", algorithm, session.path)
        return session

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    async def get_all_collections(self) -> list[Collection]:
        """Return every collection; fails as a whole if one cannot be resolved."""
        paths = expect_object_paths(
            await self._transport.get_property(
                SERVICE_PATH, SERVICE_INTERFACE, ServiceMethod.COLLECTIONS
            )
        )
        return [
            await Collection.load(self._transport, path, self._prompt_options)
            for path in paths
        ]

    async def get_collection(self, label: str) -> Collection:
        """Return the first collection whose label equals *label* exactly."""
        for collection in await self.get_all_collections():
            if await collection.get_label() == label:
                return collection
        raise NotFound(f"unknown collection: {label!r}")

    async def get_default_collection(self) -> Collection:
        return await Collection.load(self._transport, DEFAULT_COLLECTION, self._prompt_options)

    async def get_session_collection(self) -> Collection:
        """Return the in-memory collection that is discarded when the user logs out."""
        return await Collection.load(self._transport, SESSION_COLLECTION, self._prompt_options)

    async def create_collection(self, label: str, alias: str = "") -> Collection:
        """Create a collection, prompting if the service requires it.

        Parameters
        ----------
        label:
            Display label of the collection.
        alias:
            Optional alias to assign, such as ``default``. Empty for none.
        """
        properties = {f"{COLLECTION_INTERFACE}.{CollectionMethod.LABEL}": label}

        async def call():
            body = await self._call(ServiceMethod.CREATE_COLLECTION, properties, alias)
            return privileged.result_and_prompt(body)

        path = await privileged.execute(
            self._transport, call, expect_object_path, self._prompt_options
        )
        logger.info("Created collection %s (%s)", label, path)
        return await Collection.load(self._transport, path, self._prompt_options)

    # ------------------------------------------------------------------
    # Items and secrets
    # ------------------------------------------------------------------

    async def search_items(
        self, attributes: dict[str, str]
    ) -> tuple[list[Item], list[Item]]:
        """Search all collections.

        Returns
        -------
        tuple[list[Item], list[Item]]:
            ``(unlocked, locked)`` matching items.
        """
        unlocked, locked = expect_arity(
            await self._call(ServiceMethod.SEARCH_ITEMS, dict(attributes)), 2
        )
        return (
            await self._load_items(expect_object_paths(unlocked)),
            await self._load_items(expect_object_paths(locked)),
        )

    async def get_secrets(
        self, items: Iterable[PathLike], session: Session
    ) -> dict[str, Secret]:
        """Fetch the secrets of several items in one call, keyed by item path."""
        paths = [_path_of(item) for item in items]
        body = await self._call(ServiceMethod.GET_SECRETS, paths, session.require_open())
        return expect_secret_map(expect_single(body))

    # ------------------------------------------------------------------
    # Aliases
    # ------------------------------------------------------------------

    async def read_alias(self, name: str) -> str:
        """Resolve an alias such as ``default`` to a collection path."""
        path = expect_object_path(expect_single(await self._call(ServiceMethod.READ_ALIAS, name)))
        if path == NULL_PATH:
            raise NotFound("unknown alias")
        return path

    async def set_alias(self, name: str, collection: PathLike) -> None:
        """Point alias *name* at *collection*. Passing ``/`` removes the alias."""
        await self._call(ServiceMethod.SET_ALIAS, name, _path_of(collection))

    async def remove_alias(self, name: str) -> None:
        await self.set_alias(name, NULL_PATH)

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    async def lock(self, targets: Sequence[PathLike]) -> list[str]:
        """Lock items or collections, prompting if required."""
        return await privileged.lock(
            self._transport, [_path_of(t) for t in targets], self._prompt_options
        )

    async def unlock(self, targets: Sequence[PathLike]) -> list[str]:
        """Unlock items or collections, prompting if required."""
        return await privileged.unlock(
            self._transport, [_path_of(t) for t in targets], self._prompt_options
        )
