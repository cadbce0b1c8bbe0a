# ==== REDIS CLIENT ==== #

"""
Redis client for the optional durable pending-confirmation store.

Only used when ``PENDING_CONFIRMATION_BACKEND=redis``; the default in-memory
store needs no external service.
"""

from typing import Optional

import redis.asyncio as redis

from atelier.settings import settings


# ==== GLOBAL CLIENT INSTANCE ==== #

_redis_client: Optional[redis.Redis] = None


def get_redis_client(redis_url: Optional[str] = None) -> redis.Redis:
    """
    Get the shared Redis client, creating it on first use.

    Args:
        redis_url: Connection URL, defaults to ``REDIS_URL``

    Returns:
        redis.Redis: Client with ``decode_responses`` enabled

    Raises:
        RuntimeError: If no Redis URL is configured
    """
    global _redis_client

    if _redis_client is None:
        url = redis_url or settings.REDIS_URL
        if not url:
            raise RuntimeError("REDIS_URL is required for the redis pending confirmation backend")

        # --► SSL CONFIGURATION FOR REDIS CLOUD
        ssl_config = {}
        if url.startswith('rediss://'):
            ssl_config = {
                'ssl_cert_reqs': None,
                'ssl_check_hostname': False,
            }

        _redis_client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
            **ssl_config
        )

    return _redis_client


async def close_redis_client() -> None:
    """Close the shared client and forget it."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
