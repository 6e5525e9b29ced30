# passkit/init/redis.py

"""
Redis Initialization

Initialize the shared Redis client and register shutdown handlers.
"""

import logging
import atexit

logger = logging.getLogger(__name__)


def init_redis(app):
    """
    Initialize the Redis client for the Flask application.

    Args:
        app: The Flask application instance.

    Returns:
        The Redis client.
    """
    from passkit.utils.redis_manager import get_redis_client, reset_pool

    app.redis = get_redis_client(app.config['REDIS_URL'])

    if not app.config.get('TESTING'):
        try:
            app.redis.ping()
            logger.info("Redis connection established successfully")
        except Exception as e:
            # Rate limiting degrades to unthrottled until Redis is reachable
            logger.error(f"Redis connection failed: {e}")

    def cleanup_redis_on_shutdown():
        try:
            reset_pool()
            logger.info("Redis connections cleaned up on application shutdown")
        except Exception as e:
            logger.error(f"Error during Redis shutdown: {e}")

    atexit.register(cleanup_redis_on_shutdown)

    return app.redis
