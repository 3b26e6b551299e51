"""Telegram-to-core message mapping adapter.

This keeps Telethon-specific details out of the core pipeline. Conversion is
pure: no network calls, no retries.
"""

from __future__ import annotations

import uuid
from typing import Any, List, Optional, Tuple

from telethon.tl.types import (
    DocumentAttributeSticker,
    MessageEmpty,
    MessageMediaDocument,
    MessageMediaPhoto,
    PeerChannel,
    PeerChat,
    PeerUser,
)

from core.errors import ConversionError
from core.models import DOCUMENT, PHOTO, STICKER, UNKNOWN, CanonicalMessage, MediaAttachment


def is_tombstone(message: Any) -> bool:
    """Return True for empty/deleted message placeholders."""

    return message is None or isinstance(message, MessageEmpty)


def _sticker_attribute(document: Any) -> Optional[DocumentAttributeSticker]:
    for attribute in getattr(document, "attributes", None) or []:
        if isinstance(attribute, DocumentAttributeSticker):
            return attribute
    return None


def _classify_media(media: Any) -> Tuple[str, Optional[str], Optional[str]]:
    """Return (kind, file_id, emoji) for a Telethon MessageMedia object."""

    if isinstance(media, MessageMediaPhoto):
        photo = getattr(media, "photo", None)
        photo_id = getattr(photo, "id", None)
        return PHOTO, str(photo_id) if photo_id is not None else None, None

    if isinstance(media, MessageMediaDocument):
        document = getattr(media, "document", None)
        document_id = getattr(document, "id", None)
        file_id = str(document_id) if document_id is not None else None
        sticker = _sticker_attribute(document)
        if sticker is not None:
            return STICKER, file_id, getattr(sticker, "alt", None) or None
        return DOCUMENT, file_id, None

    return UNKNOWN, None, None


def _build_media(message: Any) -> Tuple[MediaAttachment, ...]:
    media = getattr(message, "media", None)
    if media is None:
        return ()
    kind, file_id, emoji = _classify_media(media)
    return (MediaAttachment(kind=kind, media_ref=media, file_id=file_id, emoji=emoji),)


def _chat_id_from_message(message: Any) -> Optional[int]:
    chat_id = getattr(message, "chat_id", None)
    if chat_id is not None:
        return chat_id

    # Raw TL messages have no chat_id property; derive it from the peer.
    peer_id = getattr(message, "peer_id", None)
    if isinstance(peer_id, PeerChannel):
        return int(f"-100{peer_id.channel_id}")
    if isinstance(peer_id, PeerChat):
        return -peer_id.chat_id
    if isinstance(peer_id, PeerUser):
        return peer_id.user_id
    return None


def _sender_id(message: Any) -> Optional[int]:
    sender_id = getattr(message, "sender_id", None)
    if sender_id is not None:
        return sender_id
    from_id = getattr(message, "from_id", None)
    if isinstance(from_id, PeerUser):
        return from_id.user_id
    return None


def _reply_to_id(message: Any) -> Optional[int]:
    reply_to = getattr(message, "reply_to", None)
    if reply_to is None:
        return None
    return getattr(reply_to, "reply_to_msg_id", None)


def convert_message(message: Any) -> CanonicalMessage:
    """Build a CanonicalMessage from a Telethon Message.

    A fresh uuid is assigned on every call; it is never derived from content.
    """

    if is_tombstone(message):
        raise ConversionError("Empty message placeholder")

    missing: List[str] = []
    message_id = getattr(message, "id", None)
    chat_id = _chat_id_from_message(message)
    date = getattr(message, "date", None)
    if message_id is None:
        missing.append("id")
    if chat_id is None:
        missing.append("chat_id")
    if date is None:
        missing.append("date")
    if missing:
        raise ConversionError(f"Message is missing required fields: {', '.join(missing)}")

    text = getattr(message, "message", None)
    if text is None:
        text = getattr(message, "raw_text", None)

    return CanonicalMessage(
        uuid=uuid.uuid4().hex,
        platform_message_id=message_id,
        chat_id=chat_id,
        date=date,
        text=text or None,
        media=_build_media(message),
        from_id=_sender_id(message),
        reply_to_message_id=_reply_to_id(message),
    )
