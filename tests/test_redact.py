from __future__ import annotations

from pydantic import BaseModel

from farmsync._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "animalId": 12,
        "accessToken": "eyJhbGci",
        "auth": {"refresh_token": "r-1", "user": "ana"},
        "Password": "pw",
        "records": [{"api-key": "k", "weight": 400}],
    }

    redacted = redact_for_log(payload)
    assert redacted["animalId"] == 12
    assert redacted["accessToken"] == "<redacted>"
    assert redacted["auth"]["refresh_token"] == "<redacted>"
    assert redacted["auth"]["user"] == "ana"
    assert redacted["Password"] == "<redacted>"
    assert redacted["records"] == [{"api-key": "<redacted>", "weight": 400}]


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"notes": long_value}, max_string=10)
    assert redacted["notes"].startswith("x" * 10)
    assert "<truncated>" in redacted["notes"]


def test_redact_for_log_summarizes_bytes_and_objects() -> None:
    class Photo:
        def __repr__(self) -> str:
            return "<Photo>"

    redacted = redact_for_log({"image": b"\x00" * 32, "thumb": Photo()})
    assert redacted == {"image": "<bytes:32b>", "thumb": "<Photo>"}


def test_redact_for_log_dumps_models_and_matches_token_suffixes() -> None:
    class Device(BaseModel):
        name: str
        fcm_token: str

    redacted = redact_for_log({"device": Device(name="tablet", fcm_token="abc"), "tags": ("a", "b")})
    assert redacted == {"device": {"name": "tablet", "fcm_token": "<redacted>"}, "tags": ["a", "b"]}
