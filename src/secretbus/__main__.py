"""secretbus -- reference command-line driver.

Usage::

    python -m secretbus [--config PATH] [--verbose] COMMAND ...

Commands:
    list                       collections and their items
    search KEY=VALUE...        items matching all attributes, in any collection
    get LABEL                  print the secret of an item
    store LABEL SECRET         create (or replace) an item
    delete LABEL               delete an item
    create-collection LABEL    create a collection
    lock / unlock              lock or unlock a collection

Item commands work on the default collection unless --collection is given.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from secretbus.config import Settings, load_settings
from secretbus.exceptions import PromptDismissed, SecretServiceError
from secretbus.service import SecretService

logger = logging.getLogger("secretbus")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_DISMISSED = 2
EXIT_INTERRUPTED = 130


# ---------------------------------------------------------------------------
# Integration seams -- module-level so tests can patch them.
# ---------------------------------------------------------------------------


def load_config(config_path: str | None) -> Settings:
    """Load settings from a YAML file, the per-user file, or defaults."""
    path = Path(config_path) if config_path else None
    return load_settings(config_path=path)


async def connect_service(settings: Settings) -> SecretService:
    """Connect to the Secret Service described by *settings*."""
    return await SecretService.connect(settings)


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------


def _attribute(text: str) -> tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {text!r}")
    return key, value


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Parameters
    ----------
    argv:
        Argument list.  Defaults to ``sys.argv[1:]`` when ``None``.
    """
    parser = argparse.ArgumentParser(
        prog="secretbus",
        description="Freedesktop Secret Service client",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to YAML configuration file")
    parser.add_argument("-v", "--verbose", action="store_true", default=False, help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List collections and their items")

    search = sub.add_parser("search", help="Search items in all collections")
    search.add_argument("attributes", nargs="*", type=_attribute, metavar="KEY=VALUE")

    for name, help_text in (("get", "Print the secret of an item"), ("delete", "Delete an item")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("label")
        cmd.add_argument("--collection", default=None, help="Collection label")

    store = sub.add_parser("store", help="Create an item")
    store.add_argument("label")
    store.add_argument("secret")
    store.add_argument("--collection", default=None, help="Collection label")
    store.add_argument(
        "--attr", dest="attributes", action="append", type=_attribute, default=[],
        metavar="KEY=VALUE", help="Item attribute (repeatable)",
    )
    store.add_argument("--content-type", default="text/plain")
    store.add_argument("--replace", action="store_true", default=False)

    create = sub.add_parser("create-collection", help="Create a collection")
    create.add_argument("label")
    create.add_argument("--alias", default="", help="Alias to assign, e.g. 'default'")

    for name in ("lock", "unlock"):
        cmd = sub.add_parser(name, help=f"{name.capitalize()} a collection")
        cmd.add_argument("--collection", default=None, help="Collection label")

    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _collection(service: SecretService, label: str | None):
    if label is None:
        return await service.get_default_collection()
    return await service.get_collection(label)


async def run_command(args: argparse.Namespace, service: SecretService) -> None:
    """Execute the parsed command against *service*, printing results to stdout."""
    if args.command == "list":
        for collection in await service.get_all_collections():
            locked = " (locked)" if await collection.is_locked() else ""
            print(f"{collection.path}: {await collection.get_label()}{locked}")
            for item in await collection.get_all_items():
                print(f"\t{item.path}: {await item.get_label()}")

    elif args.command == "search":
        unlocked, locked = await service.search_items(dict(args.attributes))
        print(f"all-items:\n\t{len(locked)} locked\n\t{len(unlocked)} unlocked")
        for item in unlocked + locked:
            print(f"{item.path}: {await item.get_label()}")

    elif args.command == "get":
        collection = await _collection(service, args.collection)
        item = await collection.get_item(args.label)
        async with await service.open_session() as session:
            secret = await item.get_secret(session)
        sys.stdout.write(secret.value.decode("utf-8", errors="replace") + "\n")

    elif args.command == "store":
        collection = await _collection(service, args.collection)
        async with await service.open_session() as session:
            item = await collection.create_item(
                session,
                args.label,
                dict(args.attributes),
                args.secret,
                content_type=args.content_type,
                replace=args.replace,
            )
        print(f"new-item: {item.path}")

    elif args.command == "delete":
        collection = await _collection(service, args.collection)
        item = await collection.get_item(args.label)
        await item.delete()
        print(f"deleted: {item.path}")

    elif args.command == "create-collection":
        collection = await service.create_collection(args.label, args.alias)
        print(f"new-collection: {collection.path}")

    elif args.command in ("lock", "unlock"):
        collection = await _collection(service, args.collection)
        action = service.lock if args.command == "lock" else service.unlock
        for path in await action([collection]):
            print(f"{args.command}ed: {path}")


async def run(args: argparse.Namespace, settings: Settings) -> int:
    """Connect, run one command and return the exit code."""
    try:
        service = await connect_service(settings)
    except SecretServiceError as exc:
        logger.error("Cannot reach the Secret Service: %s", exc)
        return EXIT_ERROR

    try:
        await run_command(args, service)
    except PromptDismissed:
        logger.info("Prompt dismissed, nothing changed")
        return EXIT_DISMISSED
    except SecretServiceError as exc:
        logger.error("%s", exc)
        return EXIT_ERROR
    finally:
        await service.close()
    return EXIT_OK


# ---------------------------------------------------------------------------
# Script entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse CLI args and run the command."""
    args = parse_args(argv)
    settings = load_config(args.config)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.logging.level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        code = asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        code = EXIT_INTERRUPTED
    sys.exit(code)


if __name__ == "__main__":
    main()
