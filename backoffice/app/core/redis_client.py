"""
Redis client initialization and connection management.

Redis backs the cross-worker delivery transition lock.
"""

import redis.asyncio as redis
from redis.exceptions import RedisError
from backoffice.app.core.config import settings


# Create async Redis client
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def get_redis():
    """
    Get Redis client instance.

    This can be used as a FastAPI dependency if needed.
    """
    return redis_client


async def ping_redis(client=None) -> bool:
    """
    Test Redis connection.

    Args:
        client: Redis client to ping, the shared client if omitted

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await (client or redis_client).ping()
    except (RedisError, OSError):
        return False
