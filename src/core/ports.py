"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the platform client, storage and
event delivery so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from core.models import StickerCacheEntry


class PlatformClientPort(Protocol):
    """Chat platform operations required by the core pipeline."""

    async def is_authorized(self) -> bool:
        ...

    async def get_messages(
        self,
        chat_id: Any,
        *,
        limit: int,
        min_id: Optional[int] = None,
        max_id: Optional[int] = None,
        offset: int = 0,
    ) -> Sequence[Any]:
        ...

    async def download_media(self, media_ref: Any) -> Optional[bytes]:
        ...

    async def send_message(self, chat_id: Any, text: str) -> Any:
        ...


class StickerStorePort(Protocol):
    """Keyed sticker storage. ``insert`` is a no-op for known file ids."""

    def find_by_file_id(self, file_id: str) -> Optional[StickerCacheEntry]:
        ...

    def insert(self, entry: StickerCacheEntry) -> bool:
        ...


class MediaStoragePort(Protocol):
    """Durable storage for downloaded media."""

    def ensure_directory(self, path: str) -> None:
        ...

    async def write_file(self, path: str, data: bytes) -> None:
        ...


class EventSinkPort(Protocol):
    """Fire-and-forget event delivery."""

    def emit(self, topic: str, payload: dict) -> None:
        ...
