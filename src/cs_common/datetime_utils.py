"""UTC datetime utilities."""

from datetime import datetime, timezone

PROVIDER_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def utc_now_ms() -> int:
    """Epoch milliseconds, used for cache freshness stamps."""
    return int(utc_now().timestamp() * 1000)


def format_provider_timestamp(dt: datetime | None = None) -> str:
    """Format as the provider's 'YYYY-MM-DD HH:MM:SS' (UTC)."""
    dt = dt or utc_now()
    return dt.astimezone(timezone.utc).strftime(PROVIDER_TIMESTAMP_FORMAT)


def parse_provider_timestamp(value: str) -> datetime:
    """Parse 'YYYY-MM-DD HH:MM:SS' as UTC. Raises ValueError on bad input."""
    return datetime.strptime(value.strip(), PROVIDER_TIMESTAMP_FORMAT).replace(
        tzinfo=timezone.utc
    )
