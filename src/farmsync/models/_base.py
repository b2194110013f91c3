"""Base model for persisted farmsync records.

Every persisted model inherits from :class:`FarmSyncModel` which provides:

* ``alias_generator=to_camel`` so the JSON written to the persistent
  store uses the same camelCase keys the mobile app always stored.
* ``populate_by_name=True`` so Python callers can use snake_case names.
* Immutability: records are replaced, never mutated in place.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from storage."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class FarmSyncModel(BaseModel):
    """Base for models that round-trip through the persistent store."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with camelCase keys and JSON-safe values."""
        return self.model_dump(mode="json", by_alias=True)
