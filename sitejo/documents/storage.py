"""Blob storage for uploaded documents."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
import re
import time
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Protocol

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(slots=True)
class StoredFile:
    key: str
    size: int


class FileStorage(Protocol):
    async def save(self, filename: str, content: bytes, *, folder: str = "documents") -> StoredFile:
        ...

    async def exists(self, key: str) -> bool:
        ...

    def path_for(self, key: str) -> Path:
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def discard(self, key: str) -> None:
        ...


def safe_filename(filename: str) -> str:
    """Strip directories and unusual characters from a client supplied name."""

    base = os.path.basename(filename.replace("\\", "/")).strip()
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned or "file"


def guess_media_type(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


class LocalFileStorage:
    """Stores blobs beneath a root directory; keys are POSIX paths relative to it."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        relative = PurePosixPath(key)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Illegal storage key: {key!r}")
        return self._root.joinpath(*relative.parts)

    async def save(self, filename: str, content: bytes, *, folder: str = "documents") -> StoredFile:
        key = f"{folder}/{int(time.time())}_{uuid.uuid4().hex[:8]}_{safe_filename(filename)}"
        path = self.path_for(key)
        await asyncio.to_thread(self._write, path, content)
        logger.debug("Stored blob key=%s bytes=%d", key, len(content))
        return StoredFile(key=key, size=len(content))

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self.path_for(key).is_file)

    async def delete(self, key: str) -> bool:
        path = self.path_for(key)

        def _unlink() -> bool:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            return True

        return await asyncio.to_thread(_unlink)

    async def discard(self, key: str) -> None:
        """Delete ``key`` without raising; failures are logged."""

        try:
            await self.delete(key)
        except (OSError, ValueError):
            logger.warning("Could not remove stored blob key=%s", key, exc_info=True)

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
