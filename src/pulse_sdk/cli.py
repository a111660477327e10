#!/usr/bin/env python3
"""
CLI tool for inspecting and draining a device's event queue.

Usage:
    pulse-queue --config pulse.yaml status
    pulse-queue --config pulse.yaml list --limit 20
    pulse-queue --config pulse.yaml flush
    pulse-queue --config pulse.yaml clear --yes
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections import Counter
from datetime import datetime, timezone
from typing import Any

from colorama import Fore, Style, init as colorama_init

from .config import PulseConfig
from .errors import PulseError
from .queue.connectivity import probe_for
from .queue.storage import create_storage
from .queue.store import EventStore
from .queue.transport import HttpTransport
from .queue.uploader import BatchUploader


def colorize(text: str, color: str) -> str:
    return f"{color}{text}{Style.RESET_ALL}"


def print_json(data: Any, indent: int = 2) -> None:
    print(json.dumps(data, indent=indent, default=str))


def format_ms(value: int) -> str:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()


def load_config(args) -> PulseConfig:
    config = PulseConfig.from_file(args.config) if args.config else PulseConfig()
    if args.backend:
        config.storage.backend = args.backend
    if args.path:
        config.storage.path = args.path
    return config


async def open_store(config: PulseConfig) -> EventStore:
    storage = create_storage(config.storage)
    await storage.start()
    store = EventStore(
        storage,
        capacity=config.storage.capacity,
        max_retries=config.upload.max_retries,
    )
    try:
        await store.load()
    except Exception:
        await storage.stop()
        raise
    return store


async def cmd_status(args, config: PulseConfig) -> int:
    """Show queue size and age."""
    store = await open_store(config)
    try:
        events = await store.read_all()
    finally:
        await store.storage.stop()

    print(colorize("Backend:", Style.BRIGHT), config.storage.backend)
    print(colorize("Queued:", Style.BRIGHT), f"{len(events)} / {config.storage.capacity}")

    if events:
        print(colorize("Oldest:", Style.BRIGHT), format_ms(events[0].enqueued_at))
        print(colorize("Newest:", Style.BRIGHT), format_ms(events[-1].enqueued_at))

        kinds = Counter(e.kind.value for e in events)
        print(colorize("\nBy kind:", Style.BRIGHT))
        for kind, count in sorted(kinds.items()):
            print(f"  {colorize(kind, Fore.CYAN)}: {count}")

        retrying = sum(1 for e in events if e.retry_count > 0)
        if retrying:
            print(colorize(f"\n{retrying} event(s) awaiting retry", Fore.YELLOW))

    return 0


async def cmd_list(args, config: PulseConfig) -> int:
    """Print queued events as JSON."""
    store = await open_store(config)
    try:
        events = await store.read_all()
    finally:
        await store.storage.stop()

    if args.limit:
        events = events[:args.limit]
    print_json([e.to_record() for e in events])
    return 0


async def cmd_flush(args, config: PulseConfig) -> int:
    """Run one upload pass against the configured collector."""
    store = await open_store(config)
    transport = HttpTransport()
    uploader = BatchUploader(transport, probe_for(config.upload))
    try:
        outcome = await uploader.run(store, config.upload)
    finally:
        await transport.aclose()
        await store.storage.stop()

    print_json(outcome.to_dict())
    if outcome.error is not None:
        print(colorize(f"Error: {outcome.error}", Fore.RED), file=sys.stderr)
        return 1
    return 0


async def cmd_clear(args, config: PulseConfig) -> int:
    """Drop every queued event."""
    if not args.yes:
        print(colorize("Refusing to clear the queue without --yes", Fore.RED), file=sys.stderr)
        return 1

    store = await open_store(config)
    try:
        size = await store.size()
        await store.clear()
    finally:
        await store.storage.stop()

    print(colorize(f"Cleared {size} event(s)", Fore.GREEN))
    return 0


COMMANDS = {
    "status": cmd_status,
    "list": cmd_list,
    "flush": cmd_flush,
    "clear": cmd_clear,
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="pulse-queue",
        description="Inspect and drain the pulse event queue",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--config", "-c", help="YAML or JSON config file")
    parser.add_argument(
        "--backend",
        choices=["memory", "file", "sqlite", "redis"],
        help="Override the storage backend",
    )
    parser.add_argument("--path", help="Override the storage path")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("status", help="Show queue size and age")

    list_parser = subparsers.add_parser("list", help="Print queued events as JSON")
    list_parser.add_argument("--limit", type=int, default=0, help="Show at most N events")

    subparsers.add_parser("flush", help="Upload queued events now")

    clear_parser = subparsers.add_parser("clear", help="Drop all queued events")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm the irreversible clear")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    colorama_init()

    try:
        config = load_config(args)
    except (OSError, ValueError, TypeError) as e:
        print(colorize(f"Invalid config: {e}", Fore.RED), file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.logging.level,
        format=config.logging.format,
    )

    try:
        return asyncio.run(COMMANDS[args.command](args, config))
    except PulseError as e:
        print(colorize(f"Error: {e}", Fore.RED), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main() or 0)
