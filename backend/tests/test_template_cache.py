import logging

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.schemas.templates import QueryMethod, TemplateResolution
from app.services.template_cache import InMemoryTemplateCache, RedisTemplateCache, is_affected_by_write


def _resolution(slug: str, method: QueryMethod) -> TemplateResolution:
    return TemplateResolution(
        industry_slug=slug,
        candidates=[],
        query_method=method,
        fallback_used=method != QueryMethod.EXACT_MATCH,
    )


@pytest.mark.parametrize(
    ("key", "method", "industry", "expected"),
    [
        ("fitness", QueryMethod.EXACT_MATCH, "fitness", True),
        ("fitness", QueryMethod.EXACT_MATCH, "dental", False),
        ("retail", QueryMethod.CONTAINS_MATCH, "Fashion Retail", True),
        ("retail", QueryMethod.CONTAINS_MATCH, "dental", False),
        ("aerospace", QueryMethod.ALL_TEMPLATES, "dental", True),
        ("aerospace", QueryMethod.ALL_TEMPLATES, None, True),
        ("fitness", QueryMethod.EXACT_MATCH, None, False),
    ],
)
def test_is_affected_by_write(key, method, industry, expected) -> None:
    assert is_affected_by_write(key, method, industry) is expected


def test_entries_expire_after_ttl() -> None:
    now = {"value": 0.0}
    cache = InMemoryTemplateCache(ttl_seconds=10.0, clock=lambda: now["value"])
    cache.set(" fitness ", _resolution("fitness", QueryMethod.EXACT_MATCH))

    assert cache.get("fitness") is not None
    now["value"] = 10.0
    assert cache.get("fitness") is None
    assert len(cache) == 0


def test_invalidate_industry_only_drops_affected_keys() -> None:
    cache = InMemoryTemplateCache()
    cache.set("fitness", _resolution("fitness", QueryMethod.EXACT_MATCH))
    cache.set("retail", _resolution("retail", QueryMethod.CONTAINS_MATCH))
    cache.set("aerospace", _resolution("aerospace", QueryMethod.ALL_TEMPLATES))

    dropped = cache.invalidate_industry("fashion retail")

    assert sorted(dropped) == ["aerospace", "retail"]
    assert cache.get("fitness") is not None


class FakeRedis:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def setex(self, key: str, ttl: int, value: str) -> None:
        self.values[key] = value
        self.ttls[key] = ttl

    def scan_iter(self, match: str):
        prefix = match.rstrip("*")
        return [key for key in list(self.values) if key.startswith(prefix)]

    def delete(self, *keys: str) -> None:
        for key in keys:
            self.values.pop(key, None)


def test_redis_cache_stores_json_and_invalidates() -> None:
    client = FakeRedis()
    cache = RedisTemplateCache(client, ttl_seconds=120)
    cache.set("fitness", _resolution("fitness", QueryMethod.EXACT_MATCH))
    cache.set("dental", _resolution("dental", QueryMethod.EXACT_MATCH))

    assert client.ttls["okr:templates:fitness"] == 120
    assert cache.get("fitness").query_method == QueryMethod.EXACT_MATCH
    assert cache.invalidate_industry("fitness") == ["fitness"]
    assert cache.get("fitness") is None
    assert cache.get("dental") is not None


class UnreachableRedis(FakeRedis):
    def scan_iter(self, match: str):
        raise RedisConnectionError("Connection refused")


def test_redis_invalidation_survives_connection_loss(caplog) -> None:
    client = UnreachableRedis()
    cache = RedisTemplateCache(client)
    cache.set("fitness", _resolution("fitness", QueryMethod.EXACT_MATCH))

    with caplog.at_level(logging.WARNING, logger="okr.templates"):
        assert cache.invalidate_industry("fitness") == []

    assert "invalidation failed" in caplog.text
    assert "okr:templates:fitness" in client.values
