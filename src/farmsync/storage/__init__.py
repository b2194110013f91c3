"""Persistent storage backends."""

from farmsync.storage.base import MemoryStore, PersistentStore
from farmsync.storage.file import FileStore

__all__ = ["FileStore", "MemoryStore", "PersistentStore"]
