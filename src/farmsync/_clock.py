"""Clock helpers shared by the cache and the sync queue."""

from __future__ import annotations

import time
from datetime import UTC, datetime


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


def utcnow() -> datetime:
    return datetime.now(UTC)
