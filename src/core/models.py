"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable, List, Optional, Tuple

PHOTO = "photo"
STICKER = "sticker"
DOCUMENT = "document"
UNKNOWN = "unknown"

MEDIA_KINDS = (PHOTO, STICKER, DOCUMENT, UNKNOWN)

_MIME_TYPES = {
    PHOTO: "image/jpeg",
    # Telegram stickers are usually WebM or WebP
    STICKER: "video/webm",
}


def mime_type_for(kind: str) -> str:
    """Return the MIME type used when serving an attachment of this kind."""

    return _MIME_TYPES.get(kind, "application/octet-stream")


@dataclass(frozen=True)
class MediaAttachment:
    """One attachment of a canonical message.

    Created without bytes during conversion and populated by the media
    resolver. ``media_ref`` is the opaque platform object used to download it.
    """

    kind: str
    media_ref: Any = field(default=None, compare=False, repr=False)
    file_id: Optional[str] = None
    emoji: Optional[str] = None
    data: Optional[bytes] = field(default=None, repr=False)
    path: Optional[str] = None
    base64: Optional[str] = field(default=None, repr=False)

    @property
    def has_reference(self) -> bool:
        return bool(self.path or self.base64)


@dataclass(frozen=True)
class CanonicalMessage:
    """Platform-agnostic message record flowing through the resolver chain.

    ``uuid`` is assigned once at conversion time and is the only join key
    used when merging resolver output back into a batch.
    """

    uuid: str
    platform_message_id: int
    chat_id: int
    date: datetime
    text: Optional[str] = None
    media: Tuple[MediaAttachment, ...] = ()
    from_id: Optional[int] = None
    reply_to_message_id: Optional[int] = None


@dataclass(frozen=True)
class StickerCacheEntry:
    """Previously downloaded sticker keyed by platform file id."""

    file_id: str
    data: Optional[bytes] = field(default=None, repr=False)
    path: Optional[str] = None
    emoji: str = ""
    description: str = ""


@dataclass(frozen=True)
class FetchOptions:
    """Pagination window and bounds for a single fetch call."""

    limit: int
    offset: int = 0
    min_id: Optional[int] = None
    max_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


def release_media_bytes(messages: Iterable[CanonicalMessage]) -> List[CanonicalMessage]:
    """Drop raw bytes from attachments that already carry a path or encoding.

    Called once a batch has been handed to the persistence sink so large
    downloads are not kept alive by later consumers.
    """

    released: List[CanonicalMessage] = []
    for message in messages:
        if not any(item.data is not None and item.has_reference for item in message.media):
            released.append(message)
            continue
        media = tuple(
            replace(item, data=None) if item.has_reference else item for item in message.media
        )
        released.append(replace(message, media=media))
    return released
