"""Durable job queue drained against connectivity and app lifecycle events."""

from farmsync.sync.queue import DeadLetterCallback, JobHandler, StatsListener, SyncQueue

__all__ = ["DeadLetterCallback", "JobHandler", "StatsListener", "SyncQueue"]
