"""Media acquisition resolver.

Downloads message attachments, reuses cached stickers and persists bytes to
a per-user, per-chat directory. Attachments of one message are fetched
concurrently; downloads across the whole batch share one semaphore.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import replace
from typing import AsyncIterator, Dict, Optional, Sequence, Tuple

from core.errors import AttachmentFetchError
from core.models import STICKER, CanonicalMessage, MediaAttachment
from core.ports import MediaStoragePort, PlatformClientPort
from core.resolvers import STREAM
from core.sticker_cache import StickerCache

LOGGER = logging.getLogger(__name__)


class MediaResolver:
    """Stream-mode resolver that materializes attachments."""

    mode = STREAM

    def __init__(
        self,
        client: PlatformClientPort,
        sticker_cache: StickerCache,
        storage: MediaStoragePort,
        media_root: str,
        user_id: object,
        concurrency: int = 8,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._client = client
        self._stickers = sticker_cache
        self._storage = storage
        self._user_root = os.path.join(media_root, str(user_id))
        self._concurrency = concurrency
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._pending_writes: Dict[str, "asyncio.Task[None]"] = {}

    def chat_directory(self, chat_id: int) -> str:
        return os.path.join(self._user_root, str(chat_id))

    def attachment_path(self, message: CanonicalMessage, index: int) -> str:
        return os.path.join(
            self.chat_directory(message.chat_id),
            f"{message.platform_message_id}_{index}",
        )

    async def stream(self, messages: Sequence[CanonicalMessage]) -> AsyncIterator[CanonicalMessage]:
        LOGGER.debug("Resolving media for %s messages", len(messages))
        tasks = [asyncio.ensure_future(self._resolve_message(message)) for message in messages]
        try:
            for message, task in zip(messages, tasks):
                try:
                    resolved = await task
                except asyncio.CancelledError:
                    raise
                except Exception:
                    # Skip this message only; the merge keeps its original form.
                    LOGGER.exception("Media resolution failed for message %s", message.platform_message_id)
                    continue
                yield resolved
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    def pending_write(self, path: str) -> "Optional[asyncio.Task[None]]":
        """Return the in-flight write for ``path``, if it has not finished yet."""

        return self._pending_writes.get(path)

    async def wait_for_writes(self) -> None:
        """Wait until every detached media write has completed."""

        while self._pending_writes:
            await asyncio.wait(list(self._pending_writes.values()))

    async def _resolve_message(self, message: CanonicalMessage) -> CanonicalMessage:
        if not message.media:
            return message

        self._storage.ensure_directory(self.chat_directory(message.chat_id))
        media = await asyncio.gather(
            *(self._resolve_attachment(message, index, item) for index, item in enumerate(message.media))
        )
        return replace(message, media=tuple(media))

    async def _resolve_attachment(
        self,
        message: CanonicalMessage,
        index: int,
        attachment: MediaAttachment,
    ) -> MediaAttachment:
        path = self.attachment_path(message, index)
        try:
            if attachment.kind == STICKER and attachment.file_id:
                entry = await self._stickers.get_or_fetch(
                    attachment.file_id,
                    lambda: self._download_and_persist(attachment, path),
                    emoji=attachment.emoji or "",
                )
                data, stored_path = entry.data, entry.path
            else:
                data, stored_path = await self._download_and_persist(attachment, path)
        except AttachmentFetchError as exc:
            LOGGER.warning(
                "Attachment %s of message %s failed: %s",
                index,
                message.platform_message_id,
                exc,
            )
            return replace(attachment, data=None, path=None, base64=None)

        return replace(attachment, data=data, path=stored_path, base64=None)

    async def _download_and_persist(
        self,
        attachment: MediaAttachment,
        path: str,
    ) -> Tuple[bytes, str]:
        data = await self._download(attachment)
        self._schedule_write(path, data)
        return data, path

    async def _download(self, attachment: MediaAttachment) -> bytes:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._concurrency)
        async with self._semaphore:
            try:
                data = await self._client.download_media(attachment.media_ref)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                raise AttachmentFetchError(f"download failed: {exc}") from exc
        if not isinstance(data, (bytes, bytearray)):
            raise AttachmentFetchError("platform returned no bytes")
        return bytes(data)

    def _schedule_write(self, path: str, data: bytes) -> None:
        # Emission does not wait for the disk; callers that need the file
        # await pending_write(path) or wait_for_writes().
        task = asyncio.ensure_future(self._storage.write_file(path, data))
        self._pending_writes[path] = task
        task.add_done_callback(lambda done: self._write_finished(path, done))

    def _write_finished(self, path: str, task: "asyncio.Task[None]") -> None:
        if self._pending_writes.get(path) is task:
            del self._pending_writes[path]
        if task.cancelled():
            LOGGER.warning("Media write cancelled: %s", path)
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning("Media write failed for %s: %s", path, exc)
        else:
            LOGGER.debug("Media written: %s", path)
