"""Local filesystem adapter implementing the core MediaStoragePort."""

from __future__ import annotations

import asyncio
import os


class LocalMediaStorage:
    """Stores downloaded media as plain files."""

    def ensure_directory(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)

    async def write_file(self, path: str, data: bytes) -> None:
        await asyncio.to_thread(self._write, path, data)

    @staticmethod
    def _write(path: str, data: bytes) -> None:
        with open(path, "wb") as handle:
            handle.write(data)
