"""Builds the Telethon client that tgharvest reads chat history through.

The session file named by ``SESSION_NAME`` has to be authorized already;
harvesting never starts an interactive login. ``app`` owns connecting and
disconnecting the returned client.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient

from core.errors import ConfigError

LOGGER = logging.getLogger(__name__)

DEFAULT_SESSION = "tgharvest"


def build_client() -> TelegramClient:
    """Return an unconnected client for the session configured in ``.env``.

    Raises ``ConfigError`` when ``API_ID`` or ``API_HASH`` is missing or when
    ``API_ID`` is not numeric.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", DEFAULT_SESSION)

    if not api_id or not api_hash:
        raise ConfigError("API_ID and API_HASH must be set in .env")
    try:
        numeric_id = int(api_id)
    except ValueError as exc:
        raise ConfigError(f"API_ID must be numeric, got {api_id!r}") from exc

    LOGGER.info("Using Telegram session %s", session_name)
    return TelegramClient(session_name, numeric_id, api_hash)
