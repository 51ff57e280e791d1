"""Redis client factory — balance cache, session registry and shared rate cache.

None of those are authoritative: Redis may be flushed at any time without
losing money, only latency.
"""

import redis.asyncio as aioredis

from config.settings import Settings


def create_redis(settings: Settings) -> aioredis.Redis:
    """Create the Redis connection pool with bounded socket timeouts."""
    return aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=2.0,
        socket_connect_timeout=2.0,
    )


async def close_redis(client: aioredis.Redis) -> None:
    """Close the Redis connection pool."""
    await client.aclose()
