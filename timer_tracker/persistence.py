"""
Persistence gateways.

The store only needs an async key-value interface holding one serialized
blob per key. Reads raise StorageCorruptError, writes raise
PersistenceWriteError.
"""

import asyncio
import contextlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from .errors import PersistenceWriteError, StorageCorruptError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    """Dict-backed gateway for tests and embedded hosts."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})
        self.fail_writes = False
        self.writes = 0

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise PersistenceWriteError(f"Backend unavailable, could not write {key!r}")
        self.data[key] = value
        self.writes += 1


class FileKeyValueStore:
    """One ``<key>.json`` file per key inside ``directory``."""

    def __init__(self, directory: str | os.PathLike):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)

    def _read(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageCorruptError(f"Could not read {path}: {e}") from e

    def _write(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp, path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise PersistenceWriteError(f"Could not write {path}: {e}") from e
        logger.debug("Wrote %d bytes to %s", len(value), path)
