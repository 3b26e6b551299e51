"""Application entry point for tgharvest."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from telethon import events

import settings
from adapters.local_media_storage import LocalMediaStorage
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_client import TelethonPlatformClient
from adapters.telegram_mapper import convert_message, is_tombstone
from client import build_client
from core.chat_keys import chat_key, parse_chat_key
from core.commands import MESSAGE_SEND, CommandHandler
from core.errors import PipelineError
from core.events import MESSAGE_FETCH_PROGRESS, STORAGE_RECORD_MESSAGES, EventBus
from core.fetcher import FetchDriver
from core.media_resolver import MediaResolver
from core.processor import MessageProcessor
from core.resolvers import ResolverRegistry
from core.sticker_cache import StickerCache

NAME = "TGHARVEST"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/tgharvest.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


class _Pipeline:
    """Everything wired for one CLI invocation."""

    def __init__(self, platform: TelethonPlatformClient, user_id: int) -> None:
        self.platform = platform
        self.bus = EventBus()
        self.storage = SQLiteStorage(settings.DB_PATH)
        self.storage.init_db()
        self.bus.subscribe(
            STORAGE_RECORD_MESSAGES,
            lambda payload: self.storage.record_messages(payload["messages"]),
        )
        self.bus.subscribe(
            MESSAGE_FETCH_PROGRESS,
            lambda payload: LOGGER.info("Task %s: %s%%", payload["task_id"], payload["progress"]),
        )

        registry = ResolverRegistry()
        self.media: Optional[MediaResolver] = None
        if settings.MEDIA.enabled:
            self.media = MediaResolver(
                client=platform,
                sticker_cache=StickerCache(self.storage),
                storage=LocalMediaStorage(),
                media_root=settings.MEDIA.media_path,
                user_id=user_id,
                concurrency=settings.MEDIA.concurrency,
            )
            registry.register("media", self.media)
        LOGGER.info("%s resolvers are registered", len(registry))

        self.processor = MessageProcessor(
            converter=convert_message,
            resolvers=registry,
            sink=self.bus,
            fetcher=FetchDriver(platform, is_tombstone=is_tombstone),
            fetch_config=settings.FETCH,
        )
        self.commands = CommandHandler(
            self.processor,
            platform,
            default_limit=settings.FETCH.default_limit,
        )

    async def flush(self) -> None:
        if self.media is not None:
            await self.media.wait_for_writes()
        await self.bus.drain()


async def _open_pipeline(client) -> Optional[_Pipeline]:
    await client.connect()
    platform = TelethonPlatformClient(client)
    if not await platform.is_authorized():
        LOGGER.error("Session is not authorized; create an authorized session file first")
        return None
    user_id = await platform.self_id()
    return _Pipeline(platform, user_id)


async def _fetch(client, args: argparse.Namespace) -> int:
    pipeline = await _open_pipeline(client)
    if pipeline is None:
        return 1

    payload = {
        "chatId": parse_chat_key(args.chat),
        "pagination": {"limit": args.limit or settings.FETCH.default_limit, "offset": args.offset},
        "minId": args.min_id,
        "maxId": args.max_id,
        "startTime": args.since,
        "endTime": args.until,
    }
    try:
        task_id = pipeline.commands.start_fetch(payload)
    except PipelineError as exc:
        LOGGER.error("Invalid fetch request: %s", exc)
        return 1

    loop = asyncio.get_running_loop()
    try:
        # Ctrl+C stops paging after the current batch instead of killing it.
        loop.add_signal_handler(signal.SIGINT, pipeline.commands.tasks.abort, task_id)
    except NotImplementedError:
        pass

    try:
        count = await pipeline.commands.wait(task_id)
    except PipelineError as exc:
        LOGGER.error("Fetch failed: %s", exc)
        return 1
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass
        await pipeline.flush()

    LOGGER.info("Stored %s messages from %s", count, args.chat)
    return 0


async def _send(client, args: argparse.Namespace) -> int:
    pipeline = await _open_pipeline(client)
    if pipeline is None:
        return 1
    await pipeline.commands.handle(
        MESSAGE_SEND,
        {"chatId": parse_chat_key(args.chat), "content": args.text},
    )
    return 0


def _listen(client, args: argparse.Namespace) -> int:
    pipeline = client.loop.run_until_complete(_open_pipeline(client))
    if pipeline is None:
        return 1

    chats = [parse_chat_key(key) for key in args.chats] or None

    # Single handler keeps Telethon integration minimal and defers all
    # conversion and resolving to the core processor.
    @client.on(events.NewMessage(chats=chats))
    async def handler(event) -> None:
        try:
            resolved = await pipeline.processor.process([event.message])
            for message in resolved:
                LOGGER.info("Stored message %s from %s", message.platform_message_id, chat_key(message.chat_id))
        except Exception:
            LOGGER.exception("Error while processing message")

    LOGGER.info("Client connected. Listening for incoming messages...")
    try:
        client.run_until_disconnected()
    finally:
        client.loop.run_until_complete(pipeline.flush())
    return 0


def _run(command: str, args: argparse.Namespace) -> int:
    _print_banner()
    _configure_logging()
    LOGGER.info("Starting tgharvest %s", command)

    try:
        client = build_client()
    except PipelineError as exc:
        LOGGER.error("%s", exc)
        return 1
    if command == "listen":
        return _listen(client, args)

    async def _main() -> int:
        try:
            if command == "send":
                return await _send(client, args)
            return await _fetch(client, args)
        finally:
            await client.disconnect()

    return client.loop.run_until_complete(_main())


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="tgharvest")
    subparsers = parser.add_subparsers(dest="command", required=True)

    fetch_parser = subparsers.add_parser("fetch", help="Fetch, resolve and store chat history")
    fetch_parser.add_argument("chat", help="@username or chat_id:<id>")
    fetch_parser.add_argument("--limit", type=int, default=None)
    fetch_parser.add_argument("--offset", type=int, default=0)
    fetch_parser.add_argument("--min-id", type=int, default=None)
    fetch_parser.add_argument("--max-id", type=int, default=None)
    fetch_parser.add_argument("--since", help="ISO timestamp, oldest message to keep")
    fetch_parser.add_argument("--until", help="ISO timestamp, newest message to keep")

    listen_parser = subparsers.add_parser("listen", help="Resolve and store new messages as they arrive")
    listen_parser.add_argument("chats", nargs="*", help="Chats to follow (default: all)")

    send_parser = subparsers.add_parser("send", help="Send a text message")
    send_parser.add_argument("chat")
    send_parser.add_argument("text")

    args = parser.parse_args(argv)
    return _run(args.command, args)


if __name__ == "__main__":
    raise SystemExit(main())
