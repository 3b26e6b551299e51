from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from adapters.sqlite_storage import SQLiteStorage
from core.models import PHOTO, STICKER, CanonicalMessage, MediaAttachment, StickerCacheEntry


def _storage(tmp_path) -> SQLiteStorage:
    storage = SQLiteStorage(str(tmp_path / "tgharvest.db"))
    storage.init_db()
    return storage


def _message(uuid: str, message_id: int, text: str = "hello", media=()) -> CanonicalMessage:
    return CanonicalMessage(
        uuid=uuid,
        platform_message_id=message_id,
        chat_id=-100123,
        date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        text=text,
        media=tuple(media),
    )


def test_record_messages_stores_references_not_bytes(tmp_path) -> None:
    storage = _storage(tmp_path)
    media = (
        MediaAttachment(kind=PHOTO, file_id="p1", data=b"raw", path="/media/1_0"),
        MediaAttachment(kind=STICKER, file_id="s1", emoji=":)"),
    )

    assert storage.record_messages([_message("u1", 1, media=media), _message("u2", 2)]) == 2

    records = storage.list_messages(-100123)
    assert [record["message_id"] for record in records] == [2, 1]
    photo, sticker = records[1]["media"]
    assert photo == {
        "kind": "photo",
        "file_id": "p1",
        "emoji": None,
        "path": "/media/1_0",
        "mime_type": "image/jpeg",
    }
    assert sticker["mime_type"] == "video/webm"
    assert "data" not in photo


def test_record_messages_last_write_wins_by_uuid(tmp_path) -> None:
    storage = _storage(tmp_path)
    first = _message("u1", 1, text="draft")
    storage.record_messages([first])
    storage.record_messages([replace(first, text="final")])

    (record,) = storage.list_messages(-100123)
    assert record["uuid"] == "u1"
    assert record["text"] == "final"


def test_refetched_message_replaces_previous_row(tmp_path) -> None:
    storage = _storage(tmp_path)
    storage.record_messages([_message("old-uuid", 1, text="old")])
    storage.record_messages([_message("new-uuid", 1, text="new")])

    (record,) = storage.list_messages(-100123)
    assert record["uuid"] == "new-uuid"
    assert record["text"] == "new"


def test_record_empty_batch(tmp_path) -> None:
    assert _storage(tmp_path).record_messages([]) == 0


def test_sticker_roundtrip(tmp_path) -> None:
    storage = _storage(tmp_path)
    assert storage.find_by_file_id("missing") is None

    assert storage.insert(StickerCacheEntry(file_id="s1", data=b"webm", path="/s1", emoji="x", description="cat"))
    entry = storage.find_by_file_id("s1")
    assert entry == StickerCacheEntry(file_id="s1", data=b"webm", path="/s1", emoji="x", description="cat")
