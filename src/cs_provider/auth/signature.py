"""Provider callback authentication: HMAC signature, timestamp window, IP allow-list.

Signature scheme (dictated by the provider):
  hex(HMAC-SHA256(secret, json([command, timestamp, login, internal_session_id,
                                uniqid, amount, type, userid, custom_data])))

The JSON must be byte-identical to what the provider's PHP side produces
with JSON_UNESCAPED_UNICODE | JSON_UNESCAPED_SLASHES | JSON_NUMERIC_CHECK:
  - compact separators, no ASCII escaping, '/' left as is
  - absent fields -> null
  - numeric strings -> numbers; integral values render without a fraction
"""

import hashlib
import hmac
import json
import logging
import re
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any

from src.cs_common.datetime_utils import parse_provider_timestamp, utc_now
from src.cs_common.errors import (
    ConfigurationError,
    ExpiredTimestampError,
    InvalidSignatureError,
    UnauthorizedIpError,
)

logger = logging.getLogger("cs.security")

SIGNED_FIELDS = (
    "command",
    "timestamp",
    "login",
    "internal_session_id",
    "uniqid",
    "amount",
    "type",
    "userid",
    "custom_data",
)
SIGNATURE_FIELD = "hashed_result"

_NUMERIC_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
# Beyond this JS switches integral numbers to exponent notation.
_MAX_PLAIN_INT = 1e21


def _normalize_number(value: float) -> int | float:
    if value.is_integer() and abs(value) < _MAX_PLAIN_INT:
        return int(value)
    return value


def _numeric_check(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, float):
        return _normalize_number(value)
    if isinstance(value, str):
        stripped = value.strip()
        if _NUMERIC_RE.match(stripped):
            return _normalize_number(float(stripped))
    return value


def canonical_payload(data: Mapping[str, Any]) -> str:
    fields = [_numeric_check(data.get(name)) for name in SIGNED_FIELDS]
    return json.dumps(fields, ensure_ascii=False, separators=(",", ":"))


def compute_signature(data: Mapping[str, Any], secret: str) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        canonical_payload(data).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def resolve_client_ip(headers: Mapping[str, str], peer: str | None) -> str | None:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return peer


class ProviderAuthenticator:
    """Stateless gatekeeper for provider callbacks. Fails closed."""

    def __init__(
        self,
        secret: str | None,
        allowed_ips: list[str] | None = None,
        window_minutes: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._secret = secret
        self._allowed_ips = frozenset(allowed_ips or ())
        self._window = timedelta(minutes=window_minutes)
        self._clock = clock

    def verify_signature(self, data: Mapping[str, Any]) -> bool:
        if not self._secret:
            raise ConfigurationError()
        provided = data.get(SIGNATURE_FIELD)
        if not isinstance(provided, str) or not provided:
            return False
        expected = compute_signature(data, self._secret)
        return hmac.compare_digest(expected, provided.lower())

    def validate_timestamp(self, value: Any) -> bool:
        """Absolute skew check, so future-dated requests are rejected too."""
        if not isinstance(value, str) or not value:
            return False
        try:
            request_time = parse_provider_timestamp(value)
        except ValueError:
            return False
        return abs(self._clock() - request_time) <= self._window

    def is_ip_allowed(self, client_ip: str | None) -> bool:
        if not self._allowed_ips:
            return True
        return client_ip in self._allowed_ips

    def authenticate(self, data: Mapping[str, Any], client_ip: str | None) -> None:
        """Run every gate in order; raise the first failure."""
        if not self.verify_signature(data):
            logger.warning(
                "Rejected provider callback: bad signature login=%s ip=%s",
                data.get("login"),
                client_ip,
            )
            raise InvalidSignatureError()
        if not self.validate_timestamp(data.get("timestamp")):
            logger.warning(
                "Rejected provider callback: timestamp %r outside window login=%s",
                data.get("timestamp"),
                data.get("login"),
            )
            raise ExpiredTimestampError()
        if not self.is_ip_allowed(client_ip):
            logger.warning("Rejected provider callback: ip %s not allowed", client_ip)
            raise UnauthorizedIpError(client_ip)
