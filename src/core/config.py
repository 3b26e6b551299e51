"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so the app layer can build it safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FetchConfig:
    """Pagination settings for fetch sessions."""

    page_size: int = 100
    default_limit: int = 100


@dataclass(frozen=True)
class MediaConfig:
    """Media acquisition settings consumed by the media resolver."""

    enabled: bool = True
    media_path: str = "media"
    # Upper bound on concurrent downloads across a whole batch.
    concurrency: int = 8
