from __future__ import annotations

import logging

import redis
from redis.exceptions import RedisError

from app.core.config import Settings, get_settings

logger = logging.getLogger("okr.cache")


def get_redis_client(settings: Settings | None = None) -> redis.Redis | None:
    """Connected client for the shared template cache, or None to stay process-local.

    An unreachable server is logged and treated as "no shared cache" so the
    resolver keeps serving from the database.
    """
    settings = settings or get_settings()
    if settings.app_env.lower() == "test" or settings.template_cache_backend != "redis":
        return None
    client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
    try:
        client.ping()
    except RedisError as exc:
        logger.warning("template cache redis unavailable url=%s error=%s; using memory", settings.redis_url, exc)
        return None
    return client
