"""Redis connection utilities."""

import redis.asyncio as redis

from unifarm.config.settings import settings


async def get_redis_client() -> redis.Redis:
    """
    Create a Redis client from settings.

    Returns:
        redis.Redis: Client with decode_responses=True; close it with
        ``aclose()`` when done
    """
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password,
        db=settings.redis_db,
        decode_responses=True,
    )
