"""Scrub job payloads and fetched records before they reach DEBUG logs.

Payloads queued by the app often carry credentials: auth tokens attached by
the calling layer, passwords on account edits, push registration tokens.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

REDACTED = "<redacted>"

# Compared after lowercasing and dropping "_" and "-", so "access_token",
# "accessToken" and "Access-Token" all match.
_SENSITIVE_KEYS: frozenset[str] = frozenset({"password", "secret", "apikey", "authorization", "cookie"})
_SENSITIVE_SUFFIXES: tuple[str, ...] = ("token", "password")

_MAX_DEPTH = 20


def _is_sensitive(key: object) -> bool:
    folded = str(key).replace("_", "").replace("-", "").lower()
    return folded in _SENSITIVE_KEYS or folded.endswith(_SENSITIVE_SUFFIXES)


def _scrub(value: Any, max_string: int, depth: int) -> Any:
    if depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}…<truncated>"
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, BaseModel):
        return _scrub(value.model_dump(mode="json"), max_string, depth + 1)
    if isinstance(value, Mapping):
        return {
            str(k): REDACTED if _is_sensitive(k) else _scrub(v, max_string, depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_scrub(item, max_string, depth + 1) for item in value]
    # Unknown objects are shown by repr only.
    return repr(value)


def redact_for_log(value: Any, *, max_string: int = 512) -> Any:
    """Return a copy of *value* with credential fields replaced and long strings cut.

    Mapping keys that look like credentials (``password``, ``apiKey``,
    anything ending in ``token``) have their values replaced by
    ``"<redacted>"``. Pydantic models are dumped first. Strings longer than
    *max_string* are truncated and bytes are summarized by length.
    """
    return _scrub(value, max_string, 0)
