"""Helpers for working with chat keys.

Chats are addressed as ``@username`` or ``chat_id:<id>`` on the command line
and in logs.
"""

from __future__ import annotations

from typing import Optional, Union

CHAT_ID_PREFIX = "chat_id:"


def chat_key(chat_id: int, username: Optional[str] = None) -> str:
    """Normalize a chat key using a single rule enforced across the app."""

    if isinstance(username, str) and username:
        return f"@{username.lower()}"
    return f"{CHAT_ID_PREFIX}{chat_id}"


def parse_chat_key(key: str) -> Union[str, int]:
    """Turn a chat key into something the platform client can resolve.

    ``@name`` stays a username string, ``chat_id:-100123`` and bare numbers
    become ints.
    """

    key = key.strip()
    if not key:
        raise ValueError("Empty chat key")
    if key.startswith("@"):
        if len(key) == 1:
            raise ValueError("Empty username in chat key")
        return key.lower()
    raw = key[len(CHAT_ID_PREFIX):] if key.startswith(CHAT_ID_PREFIX) else key
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Unsupported chat key: {key}") from None
