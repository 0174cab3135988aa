"""
Redis connection management.

Redis holds the billing dispatch locks, shared by every API and worker
process, and serves as the default Celery broker.
"""
from functools import lru_cache
from typing import Optional

from redis import asyncio as aioredis

from sepa_billing.config import settings
from sepa_billing.core.logging import get_logger

logger = get_logger(__name__)


def create_redis_client(url: Optional[str] = None) -> aioredis.Redis:
    """New client; worker tasks use one per event loop."""
    return aioredis.from_url(
        url or settings.REDIS_URL,
        decode_responses=True,
        health_check_interval=30,
    )


@lru_cache(maxsize=1)
def get_redis_client() -> aioredis.Redis:
    """Process-wide client for the API process."""
    logger.info("Creating Redis client", extra={"redis_url": settings.REDIS_URL.split("@")[-1]})
    return create_redis_client()


async def close_redis() -> None:
    if get_redis_client.cache_info().currsize:
        await get_redis_client().aclose()
        get_redis_client.cache_clear()
