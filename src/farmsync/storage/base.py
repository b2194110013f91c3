"""Persistent key/value store interface and in-memory implementation."""

from __future__ import annotations

from typing import Protocol


class PersistentStore(Protocol):
    """Structural byte store used by the cache and the sync queue.

    Implementations raise :class:`farmsync.exceptions.StoreError` on I/O
    failure. A missing key is not an error: ``get`` returns ``None`` and
    ``remove`` is a no-op.
    """

    async def get(self, key: str) -> bytes | None:
        ...

    async def set(self, key: str, value: bytes) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...


class MemoryStore:
    """Process-local store. Contents do not survive a restart."""

    def __init__(self, initial: dict[str, bytes] | None = None) -> None:
        self._data: dict[str, bytes] = dict(initial or {})

    async def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)
