"""
Redis-based rate limiter for per-user API calls (lead search, checkout).
Uses sliding window counter pattern for accurate rate limiting.
"""
import logging
import time
from typing import Optional

from src.utils.redis import get_redis, redis_key

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


async def check_rate_limit(
    key: str,
    limit: int,
    window: int = WINDOW_SECONDS,
) -> tuple[bool, Optional[int]]:
    """
    Check if a request is within rate limits using Redis sliding window.

    Returns: (allowed: bool, retry_after_seconds: int | None)
    """
    try:
        redis = await get_redis()

        key_name = redis_key("ratelimit", key)
        now = time.time()
        window_start = now - window

        pipe = redis.pipeline()
        pipe.zremrangebyscore(key_name, 0, window_start)
        pipe.zadd(key_name, {str(now): now})
        pipe.zcard(key_name)
        pipe.expire(key_name, window + 1)

        results = await pipe.execute()
        request_count = results[2]

        if request_count > limit:
            logger.warning(
                "Rate limit exceeded: key=%s count=%d limit=%d",
                key, request_count, limit,
            )
            return False, window

        return True, None
    except Exception as e:
        # Redis outage degrades to no limiting
        logger.warning("Rate limiter Redis error: %s. Allowing request.", str(e))
        return True, None


async def check_user_rate_limit(user_id: str, action: str, limit: int) -> tuple[bool, Optional[int]]:
    """Per-user limit for one action, e.g. ("search", 10) per minute."""
    return await check_rate_limit(f"{action}:{user_id}", limit)
