"""Key-value stores backing the rule and detector-state repositories.

Values are JSON text.  The file store keeps one document per key under a
directory and replaces files atomically so a crash mid-write never leaves
a truncated record behind.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Process-local store; contents are lost on restart."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._data[key] = value

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)


class JsonFileKeyValueStore:
    """One ``<key>.json`` file per key under *directory*.

    Blocking file I/O runs in a worker thread; an asyncio.Lock serialises
    writers within the process.
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)
        self._lock = asyncio.Lock()

    def _path(self, key: str) -> Path:
        return self._dir / f"{_SAFE_KEY.sub('_', key)}.json"

    async def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        async with self._lock:
            return await asyncio.to_thread(self._read, path)

    async def set(self, key: str, value: str) -> None:
        path = self._path(key)
        async with self._lock:
            await asyncio.to_thread(self._write, path, value)
        logger.debug("Wrote %s (%d bytes)", path, len(value))

    async def delete(self, key: str) -> None:
        path = self._path(key)
        async with self._lock:
            await asyncio.to_thread(path.unlink, True)

    # ── Internals ────────────────────────────────────────────────────────

    @staticmethod
    def _read(path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _write(self, path: Path, value: str) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
