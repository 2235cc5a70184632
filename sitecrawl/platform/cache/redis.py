import logging
from typing import Optional

import redis

from sitecrawl.platform.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """
    Get or create the shared sync Redis client used by the crawl queue.

    socket_timeout must outlast the blocking dequeue wait, otherwise BRPOP
    would be cut short by the client before the server replies.
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=settings.QUEUE_OPERATION_TIMEOUT_SECONDS,
            socket_timeout=settings.DEQUEUE_TIMEOUT_SECONDS + settings.QUEUE_OPERATION_TIMEOUT_SECONDS,
        )
        logger.info(f"Initialized Redis client for crawl queue: {settings.REDIS_URL}")

    return _redis_client
