"""Cache entry record."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from farmsync.models._base import FarmSyncModel


class CacheEntry(FarmSyncModel):
    """A cached value stamped with its creation time and validity window.

    ``timestamp`` and ``ttl`` are in milliseconds. The entry is fresh while
    ``now - timestamp <= ttl``.
    """

    data: Any
    timestamp: int = Field(ge=0)
    ttl: int = Field(ge=0)

    def age_ms(self, now_ms: int) -> int:
        return now_ms - self.timestamp

    def is_fresh(self, now_ms: int) -> bool:
        return self.age_ms(now_ms) <= self.ttl
