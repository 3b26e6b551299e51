"""Fetch driver: pulls pages of native messages from the platform.

Each ``fetch`` call covers one pagination window and maps to exactly one
platform request. ``iter_pages`` issues those requests with advancing
offsets for longer sessions; its paging bookkeeping is local to the call,
so one driver can serve several sessions at once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, AsyncIterator, Callable, Iterator, List

from core.errors import EmptyResult, FetchFailed, NotAuthorized
from core.models import FetchOptions
from core.ports import PlatformClientPort

LOGGER = logging.getLogger(__name__)

IDLE = "idle"
FETCHING = "fetching"
YIELDING = "yielding"
EXHAUSTED = "exhausted"
FAILED = "failed"


def _never_tombstone(message: Any) -> bool:
    return message is None


class FetchDriver:
    """Lazy producer of native messages.

    ``state`` reflects the most recent request made through this driver and
    is informational only.
    """

    def __init__(
        self,
        client: PlatformClientPort,
        is_tombstone: Callable[[Any], bool] = _never_tombstone,
    ) -> None:
        self._client = client
        self._is_tombstone = is_tombstone
        self.state = IDLE

    async def fetch(self, chat_id: Any, options: FetchOptions) -> AsyncIterator[Any]:
        """Yield native messages for a single window, in platform order."""

        messages = await self._request(chat_id, options)
        self.state = YIELDING
        for message in self._accepted(messages, options):
            yield message
        self.state = EXHAUSTED

    async def iter_pages(
        self,
        chat_id: Any,
        options: FetchOptions,
        page_size: int,
        should_stop: Callable[[], bool] = lambda: False,
    ) -> AsyncIterator[List[Any]]:
        """Yield pages of native messages until ``options.limit`` is covered.

        Stops early on a short page, when the platform has no more data or
        when ``should_stop`` returns True before the next request.
        """

        if page_size < 1:
            raise ValueError("page_size must be at least 1")

        requested = 0
        offset = options.offset
        while requested < options.limit and not should_stop():
            window = replace(options, limit=min(page_size, options.limit - requested), offset=offset)
            try:
                raw = await self._request(chat_id, window)
            except EmptyResult:
                LOGGER.debug("No more messages for %s at offset %s", chat_id, offset)
                return

            page = list(self._accepted(raw, window))
            self.state = EXHAUSTED
            requested += window.limit
            # Tombstones occupy platform offsets too.
            offset += len(raw)
            if page:
                yield page
            if len(raw) < window.limit:
                return

    async def _request(self, chat_id: Any, options: FetchOptions) -> List[Any]:
        self.state = FETCHING
        if not await self._client.is_authorized():
            self.state = FAILED
            LOGGER.error("User not authorized")
            raise NotAuthorized("Platform session is not authorized")

        LOGGER.debug(
            "Fetching messages chat=%s limit=%s offset=%s min_id=%s max_id=%s",
            chat_id,
            options.limit,
            options.offset,
            options.min_id,
            options.max_id,
        )
        try:
            messages = await self._client.get_messages(
                chat_id,
                limit=options.limit,
                min_id=options.min_id,
                max_id=options.max_id,
                offset=options.offset,
            )
        except (NotAuthorized, asyncio.CancelledError):
            self.state = FAILED
            raise
        except Exception as exc:
            self.state = FAILED
            raise FetchFailed(f"Fetch messages failed for {chat_id}: {exc}") from exc

        if not messages:
            self.state = EXHAUSTED
            raise EmptyResult(f"No messages returned for {chat_id}")
        return list(messages)

    def _accepted(self, messages: List[Any], options: FetchOptions) -> Iterator[Any]:
        for message in messages:
            if self._is_tombstone(message):
                continue
            if not _within_time_bounds(message, options):
                continue
            yield message


def _within_time_bounds(message: Any, options: FetchOptions) -> bool:
    if options.start_time is None and options.end_time is None:
        return True
    date = getattr(message, "date", None)
    if date is None:
        return True
    if options.start_time is not None and date < options.start_time:
        return False
    if options.end_time is not None and date > options.end_time:
        return False
    return True
