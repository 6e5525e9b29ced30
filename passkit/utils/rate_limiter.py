# passkit/utils/rate_limiter.py

"""
Per-tenant push rate limiting backed by Redis.

A fixed one-second window counter is kept per tenant so every worker
processing that tenant's bulk updates shares the same budget.
"""

import logging
import time

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class PushRateLimiter:
    """Blocks the caller until the tenant has budget in the current second."""

    key_prefix = 'passkit:push_rate'

    def __init__(self, redis_client, limit_per_second: int, sleep=time.sleep, clock=time.time):
        self.redis = redis_client
        self.limit = limit_per_second
        self._sleep = sleep
        self._clock = clock

    def _key(self, tenant_id, window):
        return f"{self.key_prefix}:{tenant_id}:{window}"

    def acquire(self, tenant_id) -> None:
        if not self.limit or self.limit <= 0 or self.redis is None:
            return

        while True:
            now = self._clock()
            window = int(now)
            key = self._key(tenant_id, window)
            try:
                pipe = self.redis.pipeline()
                pipe.incr(key)
                pipe.expire(key, 2)
                results = pipe.execute()
            except RedisError as e:
                logger.warning(f"Push rate limiter unavailable, continuing unthrottled: {e}")
                return

            count = int(results[0]) if results else 0

            if count <= self.limit:
                return

            wait = (window + 1) - now
            logger.debug(f"Tenant {tenant_id} hit {self.limit}/s push limit, waiting {wait:.3f}s")
            self._sleep(max(wait, 0.01))
