"""SQLite storage adapter.

Persists resolved messages and implements the core StickerStorePort using a
simple SQLite database.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from core.models import CanonicalMessage, MediaAttachment, StickerCacheEntry, mime_type_for


def _media_json(media: Iterable[MediaAttachment]) -> str:
    # Only references are stored; raw bytes live on disk under ``path``.
    return json.dumps(
        [
            {
                "kind": item.kind,
                "file_id": item.file_id,
                "emoji": item.emoji,
                "path": item.path,
                "mime_type": mime_type_for(item.kind),
            }
            for item in media
        ]
    )


class SQLiteStorage:
    """Thin SQLite wrapper for message records and the sticker cache."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - messages: last resolved state of every message, keyed by uuid
        - stickers: downloaded stickers keyed by platform file id
        """

        with self._connect() as conn:
            # messages keeps one row per platform message. Rows are replaced on
            # re-emission so the last write wins, whichever uuid it carries.
            # Fields:
            # - uuid: pipeline-assigned id of the last write (PRIMARY KEY)
            # - chat_id, message_id: platform identity (UNIQUE together)
            # - date: original message timestamp from Telegram
            # - text: message text, if any
            # - from_id, reply_to_message_id: optional relations
            # - media: JSON list of attachment references
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    uuid TEXT PRIMARY KEY,
                    chat_id INTEGER NOT NULL,
                    message_id INTEGER NOT NULL,
                    date TIMESTAMP,
                    text TEXT,
                    from_id INTEGER,
                    reply_to_message_id INTEGER,
                    media TEXT,
                    UNIQUE (chat_id, message_id)
                )
                """
            )
            # stickers is insert-only from the pipeline's point of view.
            # Fields:
            # - file_id: Telegram document id (PRIMARY KEY)
            # - sticker_bytes: raw sticker content, if downloaded
            # - sticker_path: on-disk copy, if written
            # - emoji, description: free-text metadata
            # - created_at: first insert time
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS stickers (
                    file_id TEXT PRIMARY KEY,
                    sticker_bytes BLOB,
                    sticker_path TEXT,
                    emoji TEXT NOT NULL DEFAULT '',
                    description TEXT NOT NULL DEFAULT '',
                    created_at TIMESTAMP NOT NULL
                )
                """
            )

    def record_messages(self, messages: Iterable[CanonicalMessage]) -> int:
        """Upsert resolved messages and return how many rows were written."""

        rows = [
            (
                message.uuid,
                message.chat_id,
                message.platform_message_id,
                message.date.isoformat(),
                message.text,
                message.from_id,
                message.reply_to_message_id,
                _media_json(message.media),
            )
            for message in messages
        ]
        if not rows:
            return 0
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO messages (
                    uuid,
                    chat_id,
                    message_id,
                    date,
                    text,
                    from_id,
                    reply_to_message_id,
                    media
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)

    def list_messages(self, chat_id: int, limit: int = 50, offset: int = 0) -> List[dict]:
        """Return stored messages for a chat, newest first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages
                WHERE chat_id = ?
                ORDER BY message_id DESC
                LIMIT ? OFFSET ?
                """,
                (chat_id, limit, offset),
            ).fetchall()
        records = []
        for row in rows:
            record = dict(row)
            record["media"] = json.loads(record["media"] or "[]")
            records.append(record)
        return records

    def find_by_file_id(self, file_id: str) -> Optional[StickerCacheEntry]:
        """Return the cached sticker for a file id, if any."""

        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM stickers WHERE file_id = ?",
                (file_id,),
            ).fetchone()
        if row is None:
            return None
        data = row["sticker_bytes"]
        return StickerCacheEntry(
            file_id=row["file_id"],
            data=bytes(data) if data is not None else None,
            path=row["sticker_path"],
            emoji=row["emoji"],
            description=row["description"],
        )

    def insert(self, entry: StickerCacheEntry) -> bool:
        """Insert a sticker unless the file id exists. Returns True if inserted."""

        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO stickers (
                    file_id,
                    sticker_bytes,
                    sticker_path,
                    emoji,
                    description,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.file_id,
                    entry.data,
                    entry.path,
                    entry.emoji,
                    entry.description,
                    now.isoformat(),
                ),
            )
            return cur.rowcount == 1
