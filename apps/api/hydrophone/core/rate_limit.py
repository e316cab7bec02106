"""Rate limiting for the anonymous send routes."""

import logging
import os

import redis
from slowapi import Limiter
from slowapi.util import get_remote_address

from hydrophone.core.config import settings

logger = logging.getLogger(__name__)

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
SEND_LIMIT = f"{max(settings.RATE_LIMIT_SEND, 1)}/minute"


def _storage_uri() -> str:
    if IS_TESTING or not settings.REDIS_URL:
        return "memory://"
    try:
        redis.from_url(settings.REDIS_URL, socket_connect_timeout=1).ping()
    except redis.RedisError as exc:
        logger.warning("Redis unavailable for rate limiting, using in-memory: %s", exc)
        return "memory://"
    return settings.REDIS_URL


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_storage_uri(),
    enabled=not IS_TESTING and settings.RATE_LIMIT_SEND > 0,
)
