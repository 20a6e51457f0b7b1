"""
Redis utility module for the distributed job lock.

The ranking batch may be triggered by several scheduler instances at once;
a short-lived SET NX EX key makes sure only one of them runs per scope.
Without a configured REDIS_URL the engine runs single-instance and jobs
proceed unlocked.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as redis

from skillrank.config import Config
from skillrank.utils.logger import setup_logger

logger = setup_logger(__name__)


class RedisUtils:
    """Centralized Redis configuration and connection utilities."""

    @staticmethod
    def get_redis_url() -> Optional[str]:
        """Configured Redis URL, validated for production deployments."""
        redis_url = Config.REDIS_URL
        if not redis_url:
            return None
        if not RedisUtils._validate_redis_security(redis_url):
            logger.error("REDIS_URL contains insecure configuration")
            return None
        return redis_url

    @staticmethod
    def _validate_redis_security(redis_url: str) -> bool:
        """Validate that Redis URL meets security requirements."""
        if Config.DEBUG:
            if not (redis_url.startswith('redis://localhost') or redis_url.startswith('redis://127.0.0.1')
                    or redis_url.startswith('rediss://')):
                logger.warning(f"Potentially insecure Redis URL in development: {redis_url}")
            return True

        # Production mode - enforce TLS and credentials
        if not redis_url.startswith('rediss://'):
            logger.error("Production Redis must use rediss:// (TLS) protocol")
            return False
        if '@' not in redis_url:
            logger.error("Production Redis must include authentication credentials")
            return False
        return True

    @staticmethod
    async def create_redis_client() -> Optional[redis.Redis]:
        """Create a Redis client, or None when Redis is not configured or unreachable."""
        redis_url = RedisUtils.get_redis_url()
        if not redis_url:
            return None

        try:
            client = redis.from_url(redis_url)
            # Test connection
            await client.ping()
            logger.info("Successfully connected to Redis")
            return client
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}. Jobs will run without locking.")
            return None


@asynccontextmanager
async def job_lock(client: Optional[redis.Redis], lock_key: str, ttl: int) -> AsyncIterator[bool]:
    """
    Hold a distributed lock for the duration of a job.

    Yields True when the lock was acquired (or no client is configured) and
    False when another instance holds it. The key expires after `ttl`
    seconds even if the holder dies; it is released on exit.
    """
    if client is None:
        logger.debug(f"Running {lock_key} without Redis locking")
        yield True
        return

    acquired = await client.set(lock_key, "1", ex=ttl, nx=True)
    if not acquired:
        logger.info(f"{lock_key} skipped - lock exists")
        yield False
        return

    try:
        yield True
    finally:
        try:
            await client.delete(lock_key)
        except redis.RedisError as e:
            # Expires after ttl anyway
            logger.warning(f"Failed to release {lock_key}: {e}")
