"""Redis-backed session registry.

Stored as JSON under `game_session:{username}` in the ticket issuer's wire
shape (camelCase, `playToken`), so records written by either side read back
identically.

Redis errors propagate: a registry we cannot read must not be mistaken for
a live session.
"""

import json
import logging

import redis.asyncio as aioredis

from src.cs_common.enums import SessionMode
from src.cs_session.domain.models import SessionRecord

logger = logging.getLogger("cs.session")


def session_key(username: str) -> str:
    return f"game_session:{username}"


def _record_to_json(record: SessionRecord) -> str:
    return json.dumps(
        {
            "wallet": record.wallet,
            "gameId": record.game_id,
            "playToken": record.provider_token,
            "createdAt": record.created_at,
            "mode": record.mode.value,
        }
    )


def _json_to_record(raw: str) -> SessionRecord:
    data = json.loads(raw)
    return SessionRecord(
        wallet=data["wallet"],
        game_id=int(data["gameId"]),
        provider_token=data.get("playToken") or data.get("providerToken") or "",
        mode=SessionMode(data.get("mode", SessionMode.REAL.value)),
        created_at=int(data.get("createdAt", 0)),
    )


class RedisSessionRegistry:
    def __init__(self, redis: aioredis.Redis, ttl_seconds: int = 3600) -> None:
        self._redis = redis
        self._ttl = ttl_seconds

    async def put(self, username: str, record: SessionRecord, ttl_seconds: int | None = None) -> None:
        await self._redis.setex(
            session_key(username),
            ttl_seconds or self._ttl,
            _record_to_json(record),
        )

    async def get(self, username: str) -> SessionRecord | None:
        raw = await self._redis.get(session_key(username))
        if raw is None:
            return None
        try:
            return _json_to_record(raw)
        except (ValueError, KeyError, TypeError) as exc:
            # Unreadable record is treated as absent
            logger.warning("Corrupt session record for %s: %s", username, exc)
            return None
