"""Static configuration for tgharvest.

All user-editable settings (storage, fetch paging, media, logging) live in a
single JSON file for quick edits without touching Python. Secrets stay in
.env and are read by client.py.
"""

import json
import os

from core.config import FetchConfig, MediaConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.environ.get("TGHARVEST_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _project_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database and downloaded media.
_storage = _CONFIG.get("storage", {})
DB_PATH = _project_path(_storage.get("db_path", "tgharvest.db"))
MEDIA_PATH = _project_path(_storage.get("media_path", "media"))

# Paging for fetch sessions. Each page is one platform request and one
# pass through the resolver chain.
_fetch = _CONFIG.get("fetch", {})
FETCH = FetchConfig(
    page_size=int(_fetch.get("page_size", 100)),
    default_limit=int(_fetch.get("default_limit", 100)),
)

# Media resolver switches. Concurrency bounds downloads across a batch.
_media = _CONFIG.get("media", {})
MEDIA = MediaConfig(
    enabled=bool(_media.get("enabled", True)),
    media_path=MEDIA_PATH,
    concurrency=int(_media.get("concurrency", 8)),
)

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
