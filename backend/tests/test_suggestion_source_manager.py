import asyncio
import json

import pytest

from app.providers.circuit_breaker import CircuitBreaker, CircuitState
from app.providers.errors import (
    CircuitOpenError,
    SuggestionRateLimitError,
    SuggestionStateError,
    SuggestionUnavailableError,
    SuggestionValidationError,
)
from app.providers.retry import RetryPolicy
from app.schemas.suggestions import ServiceHealth, SuggestionContext
from app.schemas.templates import TemplateOrigin
from app.services.error_journal import ErrorJournal
from app.services.performance_observer import PerformanceObserver
from app.services.suggestion_source_manager import SuggestionSession, SuggestionSourceManager
from app.services.template_resolver import TemplateCatalogResolver

CONTEXT = SuggestionContext(industry="fitness", brand_name="Acme Gym", tenant_id="tenant-1", key_product="classes")


async def _no_sleep(_: float) -> None:
    return None


def _manager(store, client, *, auto_fallback: bool = True, breaker: CircuitBreaker | None = None, max_attempts: int = 3):
    journal = ErrorJournal()
    observer = PerformanceObserver()
    return SuggestionSourceManager(
        SuggestionSession(session_id="session-1"),
        client,
        TemplateCatalogResolver(store, journal=journal, observer=observer),
        journal=journal,
        observer=observer,
        circuit_breaker=breaker or CircuitBreaker(),
        retry_policy=RetryPolicy(max_attempts=max_attempts, base_delay_seconds=0.0, sleep_fn=_no_sleep),
        auto_fallback=auto_fallback,
    )


class HangingService:
    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def request(self, context: SuggestionContext):
        self.started.set()
        await asyncio.Event().wait()

    async def health(self) -> ServiceHealth:
        return ServiceHealth(status="healthy")


async def test_generate_stores_ai_candidates(store, seed_catalog, suggestion_backend) -> None:
    manager = _manager(store, suggestion_backend.client())

    response = await manager.generate(CONTEXT)

    assert [candidate.id for candidate in response.suggestions] == ["ai-1"]
    candidate = response.suggestions[0]
    assert candidate.origin == "ai"
    assert candidate.suggested_target_value == 25.0
    assert candidate.applicable_platforms == ["instagram"]
    assert manager.session.selected_source == TemplateOrigin.AI
    assert manager.session.last_request == CONTEXT
    assert manager.session.metadata.industry == "fitness"
    wire = json.loads(suggestion_backend.requests[0].read())
    assert wire["brandName"] == "Acme Gym"
    assert wire["keyProduct"] == "classes"
    assert "objective" not in wire
    stats = manager.stats()
    assert stats["ai_templates"] == 1
    assert stats["can_regenerate"] is True
    assert stats["has_fallen_back"] is False


async def test_missing_context_fields_are_rejected_without_a_call(store, suggestion_backend) -> None:
    manager = _manager(store, suggestion_backend.client())

    with pytest.raises(SuggestionValidationError):
        await manager.generate(SuggestionContext(industry="fitness", brand_name="", tenant_id="tenant-1"))

    assert suggestion_backend.requests == []
    assert manager.journal.stats()["errors_by_category"] == {"validation_error": 1}


async def test_retryable_failure_falls_back_to_catalog(store, seed_catalog, suggestion_backend) -> None:
    suggestion_backend.status_code = 503
    manager = _manager(store, suggestion_backend.client())

    with pytest.raises(SuggestionUnavailableError):
        await manager.generate(CONTEXT)

    assert suggestion_backend.suggestion_calls == 3
    assert manager.observer.stats()["retry_count"] == 2
    assert manager.session.selected_source == TemplateOrigin.CATALOG
    assert [candidate.id for candidate in manager.session.catalog_candidates] == ["tpl-fit-1", "tpl-fit-2"]
    assert manager.stats()["has_fallen_back"] is True
    assert manager.candidates_for_source()[0].origin == "catalog"


async def test_rate_limit_is_not_retried(store, seed_catalog, suggestion_backend) -> None:
    suggestion_backend.status_code = 429
    manager = _manager(store, suggestion_backend.client())

    with pytest.raises(SuggestionRateLimitError):
        await manager.generate(CONTEXT)

    assert suggestion_backend.suggestion_calls == 1
    assert manager.session.selected_source == TemplateOrigin.CATALOG


async def test_transient_failure_then_success_keeps_ai_source(store, seed_catalog, suggestion_backend) -> None:
    suggestion_backend.statuses = [503]
    manager = _manager(store, suggestion_backend.client())

    await manager.generate(CONTEXT)

    assert suggestion_backend.suggestion_calls == 2
    assert manager.session.selected_source == TemplateOrigin.AI
    assert manager.session.catalog_candidates == []


async def test_without_auto_fallback_source_is_unchanged(store, seed_catalog, suggestion_backend) -> None:
    suggestion_backend.status_code = 500
    manager = _manager(store, suggestion_backend.client(), auto_fallback=False)

    with pytest.raises(SuggestionUnavailableError):
        await manager.generate(CONTEXT)

    assert manager.session.selected_source == TemplateOrigin.AI
    assert manager.session.catalog_candidates == []


async def test_breaker_opens_and_short_circuits(store, seed_catalog, suggestion_backend) -> None:
    suggestion_backend.status_code = 503
    breaker = CircuitBreaker(failure_threshold=2, reset_timeout=60.0, clock=lambda: 0.0)
    manager = _manager(store, suggestion_backend.client(), breaker=breaker, max_attempts=1)

    for _ in range(2):
        with pytest.raises(SuggestionUnavailableError):
            await manager.generate(CONTEXT)
    with pytest.raises(CircuitOpenError):
        await manager.generate(CONTEXT)

    assert suggestion_backend.suggestion_calls == 2
    assert breaker.state() == CircuitState.OPEN
    assert manager.is_source_available(TemplateOrigin.AI) is False


async def test_cancellation_leaves_session_untouched(store, seed_catalog) -> None:
    now = {"value": 0.0}
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=1.0, clock=lambda: now["value"])
    breaker.record_failure()
    now["value"] = 2.0
    service = HangingService()
    manager = _manager(store, service, breaker=breaker)

    task = asyncio.create_task(manager.generate(CONTEXT))
    await service.started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert manager.session.selected_source == TemplateOrigin.AI
    assert manager.session.has_tried_ai is False
    assert manager.session.catalog_candidates == []
    assert breaker.state() == CircuitState.HALF_OPEN
    assert breaker.allows_requests() is True


async def test_regenerate_requires_a_previous_request(store, suggestion_backend) -> None:
    manager = _manager(store, suggestion_backend.client())
    with pytest.raises(SuggestionStateError):
        await manager.regenerate()


async def test_regenerate_replays_last_context(store, seed_catalog, suggestion_backend) -> None:
    manager = _manager(store, suggestion_backend.client())
    await manager.generate(CONTEXT)
    await manager.regenerate()
    assert suggestion_backend.suggestion_calls == 2


async def test_switch_to_catalog_clears_ai_state(store, seed_catalog, suggestion_backend) -> None:
    manager = _manager(store, suggestion_backend.client())
    await manager.generate(CONTEXT)
    await manager.load_catalog("fitness")

    assert [candidate.origin for candidate in manager.merged_candidates()] == ["ai", "catalog", "catalog"]
    assert manager.switch_source(TemplateOrigin.CATALOG) is True

    assert manager.session.ai_candidates == []
    assert manager.session.last_request is None
    assert manager.session.metadata is None
    assert len(manager.session.catalog_candidates) == 2


async def test_switch_to_unhealthy_ai_redirects_or_refuses(store, suggestion_backend) -> None:
    suggestion_backend.health_status = "unhealthy"
    manager = _manager(store, suggestion_backend.client())
    assert await manager.probe_health() is False

    assert manager.switch_source(TemplateOrigin.AI) is True
    assert manager.session.selected_source == TemplateOrigin.CATALOG

    strict = _manager(store, suggestion_backend.client(), auto_fallback=False)
    strict.session.service_healthy = False
    assert strict.switch_source(TemplateOrigin.AI) is False
    assert strict.session.selected_source == TemplateOrigin.AI


async def test_clear_resets_both_sources(store, seed_catalog, suggestion_backend) -> None:
    manager = _manager(store, suggestion_backend.client())
    await manager.generate(CONTEXT)
    await manager.load_catalog("fitness")

    manager.clear()

    assert manager.merged_candidates() == []
    assert manager.stats()["can_regenerate"] is False
