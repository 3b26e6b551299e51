"""Telethon adapter implementing the core PlatformClientPort."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from telethon import TelegramClient, errors

from core.errors import NotAuthorized

LOGGER = logging.getLogger(__name__)


class TelethonPlatformClient:
    """Thin wrapper that satisfies the PlatformClientPort contract."""

    def __init__(self, client: TelegramClient) -> None:
        self._client = client

    async def is_authorized(self) -> bool:
        return await self._client.is_user_authorized()

    async def self_id(self) -> int:
        me = await self._client.get_me()
        if me is None:
            raise NotAuthorized("Platform session is not authorized")
        return me.id

    async def get_messages(
        self,
        chat_id: Any,
        *,
        limit: int,
        min_id: Optional[int] = None,
        max_id: Optional[int] = None,
        offset: int = 0,
    ) -> Sequence[Any]:
        try:
            return await self._client.get_messages(
                chat_id,
                limit=limit,
                min_id=min_id or 0,
                max_id=max_id or 0,
                add_offset=offset,
            )
        except errors.UnauthorizedError as exc:
            raise NotAuthorized(str(exc)) from exc

    async def download_media(self, media_ref: Any) -> Optional[bytes]:
        # file=bytes keeps the download in memory; the resolver persists it.
        return await self._client.download_media(media_ref, file=bytes)

    async def send_message(self, chat_id: Any, text: str) -> Any:
        LOGGER.info("Sending message to %s", chat_id)
        return await self._client.send_message(chat_id, text)
