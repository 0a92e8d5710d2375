from __future__ import annotations

import logging
import time
from collections.abc import Callable
from threading import Lock
from typing import Protocol

import redis
from redis.exceptions import RedisError

from app.schemas.templates import QueryMethod, TemplateResolution

logger = logging.getLogger("okr.templates")

DEFAULT_TTL_SECONDS = 300.0


def cache_key(industry_slug: str) -> str:
    return industry_slug.strip()


def is_affected_by_write(key: str, query_method: QueryMethod, industry: str | None) -> bool:
    """Whether a template write for ``industry`` can change the cached resolution under ``key``."""
    if query_method == QueryMethod.ALL_TEMPLATES:
        return True
    if industry is None:
        return False
    written = industry.strip()
    if key == written:
        return True
    return query_method == QueryMethod.CONTAINS_MATCH and key.lower() in written.lower()


class TemplateCache(Protocol):
    def get(self, industry_slug: str) -> TemplateResolution | None: ...

    def set(self, industry_slug: str, resolution: TemplateResolution) -> None: ...

    def invalidate_industry(self, industry: str | None) -> list[str]: ...


class InMemoryTemplateCache:
    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, TemplateResolution]] = {}
        self._lock = Lock()

    def get(self, industry_slug: str) -> TemplateResolution | None:
        key = cache_key(industry_slug)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, resolution = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return resolution

    def set(self, industry_slug: str, resolution: TemplateResolution) -> None:
        with self._lock:
            self._entries[cache_key(industry_slug)] = (self._clock() + self.ttl_seconds, resolution)

    def invalidate_industry(self, industry: str | None) -> list[str]:
        with self._lock:
            dropped = [
                key
                for key, (_, resolution) in self._entries.items()
                if is_affected_by_write(key, resolution.query_method, industry)
            ]
            for key in dropped:
                del self._entries[key]
        if dropped:
            logger.info("template cache invalidated industry=%s keys=%s", industry, dropped)
        return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisTemplateCache:
    """Resolutions stored as JSON under ``okr:templates:<slug>`` with SETEX expiry."""

    prefix = "okr:templates:"

    def __init__(self, client: redis.Redis, *, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        self._client = client
        self.ttl_seconds = ttl_seconds

    def get(self, industry_slug: str) -> TemplateResolution | None:
        try:
            raw = self._client.get(self.prefix + cache_key(industry_slug))
        except RedisError:
            logger.warning("template cache read failed slug=%s", industry_slug, exc_info=True)
            return None
        if raw is None:
            return None
        return TemplateResolution.model_validate_json(raw)

    def set(self, industry_slug: str, resolution: TemplateResolution) -> None:
        try:
            self._client.setex(
                self.prefix + cache_key(industry_slug),
                max(1, int(self.ttl_seconds)),
                resolution.model_dump_json(),
            )
        except RedisError:
            logger.warning("template cache write failed slug=%s", industry_slug, exc_info=True)

    def invalidate_industry(self, industry: str | None) -> list[str]:
        dropped: list[str] = []
        try:
            for redis_key in self._client.scan_iter(match=f"{self.prefix}*"):
                name = redis_key.decode() if isinstance(redis_key, bytes) else redis_key
                raw = self._client.get(name)
                if raw is None:
                    continue
                resolution = TemplateResolution.model_validate_json(raw)
                key = name[len(self.prefix):]
                if is_affected_by_write(key, resolution.query_method, industry):
                    dropped.append(key)
            if dropped:
                self._client.delete(*(self.prefix + key for key in dropped))
        except RedisError:
            # Entries left behind still expire with their TTL.
            logger.warning("template cache invalidation failed industry=%s", industry, exc_info=True)
            return []
        if dropped:
            logger.info("template cache invalidated industry=%s keys=%s", industry, dropped)
        return dropped
