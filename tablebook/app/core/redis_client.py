import logging

import redis.asyncio as redis

from tablebook.app.core.config import settings

logger = logging.getLogger(__name__)

# Short-lived request holds; reservations themselves live in Postgres.
redis_client: redis.Redis | None = None


async def init_redis() -> None:
    """Initialise the shared Redis connection used for request holds."""
    global redis_client
    redis_client = redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.STORAGE_TIMEOUT_SECONDS,
    )
    logger.info("Redis hold store initialised")


async def close_redis() -> None:
    """Close the Redis connection if it was initialised."""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
