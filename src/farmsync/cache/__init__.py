"""Read-through cache with memory and persistent tiers."""

from farmsync.cache.cache import MISSING, Cache, Fetcher

__all__ = ["MISSING", "Cache", "Fetcher"]
