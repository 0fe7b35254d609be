"""Redis-backed fixed-window rate limiter for customer-initiated evaluations.

Every CUSTOMER_REQUEST evaluation runs the full target set against core
banking, so a customer refreshing their dashboard is throttled here before
any DB or HTTP work happens. Batch and back-office triggers are not limited.

Usage:
    from src.security.rate_limiter import rate_limiter

    allowed, retry_after = await rate_limiter.check_customer_evaluation(42)
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.config import settings
from src.db.engine import redis_client

logger = logging.getLogger(__name__)


def evaluation_key(customer_id: int) -> str:
    return f"rate:eligibility:{customer_id}"


class RateLimiter:
    """Fixed-window counter: INCR, EXPIRE on the first hit of the window."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def check(self, key: str, limit: int, window: int) -> tuple[bool, int]:
        """Count one hit against `key`.

        Returns:
            (allowed, retry_after): retry_after is the seconds left in the
            window when refused, 0 when allowed.
        """
        try:
            count = await self._redis.incr(key)
            if count == 1:
                await self._redis.expire(key, window)

            if count > limit:
                ttl = await self._redis.ttl(key)
                return False, max(ttl, 1)

            return True, 0
        except RedisError:
            logger.exception("Rate limiter Redis error for key %s", key)
            # Fail open: never block a customer because Redis is down
            return True, 0

    async def check_customer_evaluation(self, customer_id: int) -> tuple[bool, int]:
        return await self.check(
            evaluation_key(customer_id),
            limit=settings.eligibility.customer_eval_limit,
            window=settings.eligibility.customer_eval_window_seconds,
        )


# Module-level singleton
rate_limiter = RateLimiter(redis_client)
