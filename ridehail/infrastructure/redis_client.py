"""Redis async connection pool and the process-wide change feed."""

from __future__ import annotations

import redis.asyncio as aioredis

from ridehail.config import settings
from ridehail.infrastructure.realtime import ChangeFeed

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)
_feed: ChangeFeed | None = None


async def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    return aioredis.Redis(connection_pool=_pool)


async def get_change_feed() -> ChangeFeed:
    """One feed (and one pub/sub listener) per process."""
    global _feed
    if _feed is None:
        _feed = ChangeFeed(await get_redis(), settings.change_feed_channel)
    return _feed
