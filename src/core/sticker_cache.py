"""Read-through sticker cache keyed by platform file id (core domain)."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

from core.models import StickerCacheEntry
from core.ports import StickerStorePort

LOGGER = logging.getLogger(__name__)

StickerLoader = Callable[[], Awaitable[Tuple[Optional[bytes], Optional[str]]]]


class InMemoryStickerStore:
    """Dict-backed sticker store, used when no database is configured."""

    def __init__(self) -> None:
        self._entries: Dict[str, StickerCacheEntry] = {}

    def find_by_file_id(self, file_id: str) -> Optional[StickerCacheEntry]:
        return self._entries.get(file_id)

    def insert(self, entry: StickerCacheEntry) -> bool:
        if entry.file_id in self._entries:
            return False
        self._entries[entry.file_id] = entry
        return True

    def __len__(self) -> int:
        return len(self._entries)


class StickerCache:
    """Serialize lookups and inserts per file id over a sticker store.

    Concurrent resolutions of the same sticker wait on one lock, so only the
    first one downloads and inserts; the others read the cached entry. A lock
    lives only while someone holds or waits for it.
    """

    def __init__(self, store: StickerStorePort) -> None:
        self._store = store
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _locked(self, file_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(file_id)
        if lock is None:
            lock = self._locks[file_id] = asyncio.Lock()
        self._lock_users[file_id] = self._lock_users.get(file_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[file_id] -= 1
            if not self._lock_users[file_id]:
                del self._lock_users[file_id]
                del self._locks[file_id]

    def find(self, file_id: str) -> Optional[StickerCacheEntry]:
        return self._store.find_by_file_id(file_id)

    def description(self, file_id: str) -> str:
        """Stored description of a sticker, empty when unknown."""

        entry = self._store.find_by_file_id(file_id)
        return entry.description if entry is not None else ""

    async def insert(self, entry: StickerCacheEntry) -> bool:
        """Insert unless the file id is known. Returns False for the loser."""

        async with self._locked(entry.file_id):
            if self._store.find_by_file_id(entry.file_id) is not None:
                return False
            return self._store.insert(entry)

    async def get_or_fetch(
        self,
        file_id: str,
        loader: StickerLoader,
        emoji: str = "",
    ) -> StickerCacheEntry:
        """Return the cached sticker, calling ``loader`` only on a miss."""

        async with self._locked(file_id):
            cached = self._store.find_by_file_id(file_id)
            if cached is not None:
                LOGGER.debug("Sticker cache hit for %s", file_id)
                return cached

            data, path = await loader()
            entry = StickerCacheEntry(file_id=file_id, data=data, path=path, emoji=emoji)
            if not self._store.insert(entry):
                # Another writer outside this process won; keep its entry.
                return self._store.find_by_file_id(file_id) or entry
            LOGGER.debug("Sticker %s cached", file_id)
            return entry
