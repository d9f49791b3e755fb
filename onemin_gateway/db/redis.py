"""
Redis Connection Management Module

Provides Redis client lifecycle management for the KV store backend.
Only used when KV_STORE_TYPE is set to "redis".
"""

import logging
import warnings
from typing import Optional
from urllib.parse import urlparse

from redis.asyncio import Redis

from onemin_gateway.config import get_settings

logger = logging.getLogger(__name__)

# Global Redis client instance
_redis_client: Optional[Redis] = None


def _check_redis_security(redis_url: str) -> None:
    """
    Check Redis connection security.

    Warns if Redis URL has no password and is not a localhost connection.
    """
    parsed = urlparse(redis_url)
    has_password = bool(parsed.password)
    is_localhost = parsed.hostname in ("localhost", "127.0.0.1", "::1")

    if not has_password and not is_localhost:
        warnings.warn(
            "SECURITY WARNING: Redis connection has no password and is not connecting to localhost. "
            "Please set a password in REDIS_URL using the format: redis://:password@host:port/db",
            UserWarning,
            stacklevel=3,
        )
        logger.warning("Redis connection without password to non-localhost host detected")


async def init_redis() -> Redis:
    """
    Initialize Redis Connection

    Creates an async Redis client from the configured REDIS_URL and verifies connectivity.
    """
    global _redis_client

    if _redis_client is not None:
        logger.warning("Redis client already initialized")
        return _redis_client

    settings = get_settings()
    _check_redis_security(settings.REDIS_URL)

    _redis_client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    await _redis_client.ping()
    logger.info("Redis connection established: %s", urlparse(settings.REDIS_URL).hostname)
    return _redis_client


async def close_redis() -> None:
    """Gracefully close the Redis client connection"""
    global _redis_client

    if _redis_client is None:
        return

    await _redis_client.aclose()
    _redis_client = None
    logger.info("Redis connection closed")

