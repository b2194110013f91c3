"""Directory-backed persistent store."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import tempfile
import weakref
from pathlib import Path
from urllib.parse import quote

from farmsync.exceptions import StoreError

_logger = logging.getLogger(__name__)

_SUFFIX = ".bin"


def _filename_for(key: str) -> str:
    if not key:
        raise ValueError("key must be non-empty")
    # Percent-encode so arbitrary keys map to a single flat file name.
    return quote(key, safe="-_.") + _SUFFIX


class FileStore:
    """Store each key as one file inside *directory*.

    Writes go to a temporary file that atomically replaces the target, so a
    crash mid-write leaves either the old or the new value. Writes and
    removals of one key are applied in call order. Blocking file I/O runs in
    the loop's default executor.

    Parameters
    ----------
    directory : str or Path
        Storage directory. Created on first write if missing.
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)
        # Held by every pending write of a key; dropped once none remain.
        self._key_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def directory(self) -> Path:
        return self._dir

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[key] = lock
        return lock

    def _path(self, key: str) -> Path:
        return self._dir / _filename_for(key)

    def _read(self, key: str) -> bytes | None:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError(f"Failed to read {key!r}: {exc}", key=key) from exc

    def _write(self, key: str, value: bytes) -> None:
        target = self._path(key)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(value)
                os.replace(tmp_name, target)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise StoreError(f"Failed to write {key!r}: {exc}", key=key) from exc

    def _delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StoreError(f"Failed to remove {key!r}: {exc}", key=key) from exc

    async def get(self, key: str) -> bytes | None:
        return await asyncio.get_running_loop().run_in_executor(None, self._read, key)

    async def set(self, key: str, value: bytes) -> None:
        _logger.debug("Writing %d bytes to %s", len(value), key)
        async with self._lock_for(key):
            await asyncio.get_running_loop().run_in_executor(None, self._write, key, bytes(value))

    async def remove(self, key: str) -> None:
        async with self._lock_for(key):
            await asyncio.get_running_loop().run_in_executor(None, self._delete, key)
