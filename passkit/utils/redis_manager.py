# passkit/utils/redis_manager.py

"""
Redis Connection Module

Builds the shared Redis client used for push rate limiting. A single
connection pool is created per process and reused by every caller.
"""

import logging
import threading
from typing import Optional

from redis import Redis, ConnectionPool

logger = logging.getLogger(__name__)

_lock = threading.RLock()
_pool: Optional[ConnectionPool] = None


def get_redis_client(redis_url: str) -> Redis:
    """
    Return a decoded Redis client backed by the process-wide connection pool.

    Args:
        redis_url: Redis connection URL

    Returns:
        Redis client with decode_responses enabled
    """
    global _pool
    with _lock:
        if _pool is None:
            logger.info(f"Initializing Redis connection pool for {redis_url.rsplit('@', 1)[-1]}")
            _pool = ConnectionPool.from_url(
                redis_url,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
                health_check_interval=60,
                max_connections=25,
                retry_on_timeout=True,
                decode_responses=True,
            )
    return Redis(connection_pool=_pool)


def reset_pool() -> None:
    """Disconnect and drop the shared pool."""
    global _pool
    with _lock:
        if _pool is not None:
            _pool.disconnect()
            _pool = None
