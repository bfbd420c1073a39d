"""Redis async client (pub/sub transport for ride events)."""

import redis.asyncio as aioredis


def create_redis(redis_url: str) -> aioredis.Redis:
    """Return a Redis client with its own connection pool.

    Created once per process by the application lifespan and closed on
    shutdown with ``await client.aclose()``.
    """
    pool = aioredis.ConnectionPool.from_url(redis_url, decode_responses=True)
    return aioredis.Redis(connection_pool=pool)
