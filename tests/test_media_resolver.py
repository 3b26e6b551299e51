from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone

import pytest

from adapters.local_media_storage import LocalMediaStorage
from core.models import DOCUMENT, PHOTO, STICKER, CanonicalMessage, MediaAttachment, StickerCacheEntry
from core.media_resolver import MediaResolver
from core.sticker_cache import InMemoryStickerStore, StickerCache


class FakeMediaRef:
    def __init__(self, name: str) -> None:
        self.name = name


class FakeClient:
    def __init__(self, failing: "set[str] | None" = None, empty: "set[str] | None" = None) -> None:
        self.failing = failing or set()
        self.empty = empty or set()
        self.downloads: list[str] = []

    async def download_media(self, media_ref):
        self.downloads.append(media_ref.name)
        await asyncio.sleep(0)
        if media_ref.name in self.failing:
            raise ConnectionError(f"cannot fetch {media_ref.name}")
        if media_ref.name in self.empty:
            return None
        return f"bytes:{media_ref.name}".encode()


class FakeStorage:
    def __init__(self, fail_writes: bool = False) -> None:
        self.directories: list[str] = []
        self.files: dict[str, bytes] = {}
        self._fail_writes = fail_writes

    def ensure_directory(self, path: str) -> None:
        self.directories.append(path)

    async def write_file(self, path: str, data: bytes) -> None:
        await asyncio.sleep(0)
        if self._fail_writes:
            raise OSError("disk full")
        self.files[path] = data


def _attachment(name: str, kind: str = PHOTO, **kwargs) -> MediaAttachment:
    return MediaAttachment(kind=kind, media_ref=FakeMediaRef(name), **kwargs)


def _message(message_id: int, media=(), chat_id: int = 77) -> CanonicalMessage:
    return CanonicalMessage(
        uuid=f"uuid-{message_id}",
        platform_message_id=message_id,
        chat_id=chat_id,
        date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        media=tuple(media),
    )


def _resolver(client, storage, store=None, concurrency: int = 4) -> MediaResolver:
    return MediaResolver(
        client=client,
        sticker_cache=StickerCache(store if store is not None else InMemoryStickerStore()),
        storage=storage,
        media_root="/media",
        user_id=1001,
        concurrency=concurrency,
    )


async def _collect(resolver: MediaResolver, messages) -> list:
    return [message async for message in resolver.stream(messages)]


def test_partial_attachment_failure_keeps_other_attachments() -> None:
    client = FakeClient(failing={"b"})
    storage = FakeStorage()
    message = _message(5, [_attachment("a"), _attachment("b"), _attachment("c")])

    async def run():
        resolver = _resolver(client, storage)
        out = await _collect(resolver, [message])
        await resolver.wait_for_writes()
        return out

    (resolved,) = asyncio.run(run())

    first, second, third = resolved.media
    assert first.data == b"bytes:a"
    assert first.path == os.path.join("/media", "1001", "77", "5_0")
    assert second.data is None and second.path is None
    assert third.data == b"bytes:c"
    assert third.path == os.path.join("/media", "1001", "77", "5_2")
    assert set(storage.files) == {first.path, third.path}
    assert storage.directories == [os.path.join("/media", "1001", "77")]


def test_missing_bytes_count_as_failed_attachment() -> None:
    client = FakeClient(empty={"a"})

    (resolved,) = asyncio.run(_collect(_resolver(client, FakeStorage()), [_message(1, [_attachment("a")])]))

    assert resolved.media[0].data is None
    assert resolved.media[0].path is None


def test_messages_without_media_pass_through_in_order() -> None:
    client = FakeClient()
    storage = FakeStorage()
    messages = [_message(1), _message(2, [_attachment("x")]), _message(3)]

    resolved = asyncio.run(_collect(_resolver(client, storage), messages))

    assert [m.uuid for m in resolved] == ["uuid-1", "uuid-2", "uuid-3"]
    assert resolved[0] is messages[0]
    assert resolved[1].media[0].data == b"bytes:x"


def test_base64_is_cleared() -> None:
    message = _message(1, [_attachment("a", base64="YWJj")])

    (resolved,) = asyncio.run(_collect(_resolver(FakeClient(), FakeStorage()), [message]))

    assert resolved.media[0].base64 is None
    assert resolved.media[0].data == b"bytes:a"


def test_sticker_cache_hit_skips_download() -> None:
    store = InMemoryStickerStore()
    store.insert(StickerCacheEntry(file_id="s1", data=b"cached", path="/stickers/s1", emoji=":)"))
    client = FakeClient()
    message = _message(1, [_attachment("sticker", kind=STICKER, file_id="s1")])

    (resolved,) = asyncio.run(_collect(_resolver(client, FakeStorage(), store), [message]))

    assert client.downloads == []
    assert resolved.media[0].data == b"cached"
    assert resolved.media[0].path == "/stickers/s1"


def test_sticker_cache_miss_downloads_once_and_writes_through() -> None:
    store = InMemoryStickerStore()
    client = FakeClient()
    messages = [
        _message(1, [_attachment("sticker", kind=STICKER, file_id="s1", emoji="\U0001F44D")]),
        _message(2, [_attachment("sticker", kind=STICKER, file_id="s1", emoji="\U0001F44D")]),
    ]

    resolved = asyncio.run(_collect(_resolver(client, FakeStorage(), store), messages))

    assert client.downloads == ["sticker"]
    entry = store.find_by_file_id("s1")
    assert entry is not None
    assert entry.data == b"bytes:sticker"
    assert entry.emoji == "\U0001F44D"
    # the second message reuses the first download, path included
    assert resolved[0].media[0].path == resolved[1].media[0].path == entry.path


def test_failed_sticker_download_is_not_cached() -> None:
    store = InMemoryStickerStore()
    message = _message(1, [_attachment("sticker", kind=STICKER, file_id="s1")])

    (resolved,) = asyncio.run(_collect(_resolver(FakeClient(failing={"sticker"}), FakeStorage(), store), [message]))

    assert resolved.media[0].data is None
    assert store.find_by_file_id("s1") is None


def test_write_is_tracked_until_completion() -> None:
    class GatedStorage(FakeStorage):
        def __init__(self) -> None:
            super().__init__()
            self.gate: "asyncio.Event | None" = None

        async def write_file(self, path: str, data: bytes) -> None:
            await self.gate.wait()
            self.files[path] = data

    storage = GatedStorage()

    async def run():
        storage.gate = asyncio.Event()
        resolver = _resolver(FakeClient(), storage)
        (resolved,) = await _collect(resolver, [_message(1, [_attachment("a", kind=DOCUMENT)])])
        path = resolved.media[0].path
        pending = resolver.pending_write(path)
        assert pending is not None
        assert path not in storage.files
        storage.gate.set()
        await resolver.wait_for_writes()
        return resolver, path

    resolver, path = asyncio.run(run())

    assert storage.files[path] == b"bytes:a"
    assert resolver.pending_write(path) is None


def test_write_failure_does_not_fail_message() -> None:
    storage = FakeStorage(fail_writes=True)

    async def run():
        resolver = _resolver(FakeClient(), storage)
        out = await _collect(resolver, [_message(1, [_attachment("a")])])
        await resolver.wait_for_writes()
        return out

    (resolved,) = asyncio.run(run())

    assert resolved.media[0].data == b"bytes:a"
    assert storage.files == {}


def test_downloads_are_bounded_by_concurrency() -> None:
    class CountingClient(FakeClient):
        def __init__(self) -> None:
            super().__init__()
            self.active = 0
            self.peak = 0

        async def download_media(self, media_ref):
            self.active += 1
            self.peak = max(self.peak, self.active)
            await asyncio.sleep(0.01)
            self.active -= 1
            return b"x"

    client = CountingClient()
    messages = [_message(i, [_attachment(f"{i}-{j}") for j in range(3)]) for i in range(5)]

    resolved = asyncio.run(_collect(_resolver(client, FakeStorage(), concurrency=2), messages))

    assert len(resolved) == 5
    assert client.peak == 2


def test_local_storage_writes_real_files(tmp_path) -> None:
    client = FakeClient()

    async def run():
        resolver = MediaResolver(
            client=client,
            sticker_cache=StickerCache(InMemoryStickerStore()),
            storage=LocalMediaStorage(),
            media_root=str(tmp_path),
            user_id="me",
        )
        out = await _collect(resolver, [_message(9, [_attachment("a")], chat_id=-100)])
        await resolver.wait_for_writes()
        return out

    (resolved,) = asyncio.run(run())

    path = resolved.media[0].path
    assert path == str(tmp_path / "me" / "-100" / "9_0")
    with open(path, "rb") as handle:
        assert handle.read() == b"bytes:a"


def test_concurrency_must_be_positive() -> None:
    with pytest.raises(ValueError):
        _resolver(FakeClient(), FakeStorage(), concurrency=0)
