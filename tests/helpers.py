"""Constants and request builders shared by unit and integration tests."""

from datetime import datetime

from src.cs_common.datetime_utils import format_provider_timestamp, utc_now
from src.cs_provider.auth.signature import compute_signature

PROVIDER_SECRET = "test-provider-secret"
WALLET = "Gz3ZKi9ARmqjbhBnxx3jQm1pUuFhXcwd9YkT8sPvLbEw"
USERNAME = WALLET[:20]
LOGIN = f"user_{USERNAME}"


def signed(payload: dict, secret: str = PROVIDER_SECRET) -> dict:
    """Return payload with a valid hashed_result."""
    body = dict(payload)
    body["hashed_result"] = compute_signature(body, secret)
    return body


def provider_timestamp(dt: datetime | None = None) -> str:
    return format_provider_timestamp(dt or utc_now())
