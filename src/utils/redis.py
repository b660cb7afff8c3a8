"""
Shared Redis connection - used by the rate limiter, readiness check and the
AI service heartbeat. Lazily created so importing this module never connects.
"""
import logging

logger = logging.getLogger(__name__)

KEY_PREFIX = "leadgenai"

_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from src.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


def redis_key(*parts: str) -> str:
    return ":".join((KEY_PREFIX, *parts))
