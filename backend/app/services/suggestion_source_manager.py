from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from app.core import metrics
from app.core.errors import OkrCoreError
from app.observability.events import emit_suggestion_fallback
from app.providers.circuit_breaker import CircuitBreaker, CircuitState
from app.providers.errors import (
    SuggestionServiceError,
    SuggestionStateError,
    SuggestionValidationError,
)
from app.providers.retry import RetryExhaustedError, RetryPolicy
from app.providers.suggestion_client import HEALTH_PATH, GenerativeSuggestionService
from app.schemas.suggestions import SuggestionContext, SuggestionMetadata, SuggestionResponse
from app.schemas.templates import AiCandidate, CatalogCandidate, TemplateCandidate, TemplateOrigin
from app.services.error_journal import ErrorCategory, ErrorJournal, ErrorSeverity
from app.services.performance_observer import PerformanceObserver
from app.services.template_resolver import TemplateCatalogResolver

logger = logging.getLogger("okr.suggestions")


@dataclass
class SuggestionSession:
    """Per-caller suggestion state; one instance per session, never shared as a module global."""

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    selected_source: TemplateOrigin = TemplateOrigin.AI
    service_healthy: bool = True
    ai_candidates: list[AiCandidate] = field(default_factory=list)
    catalog_candidates: list[CatalogCandidate] = field(default_factory=list)
    catalog_error: str | None = None
    last_request: SuggestionContext | None = None
    metadata: SuggestionMetadata | None = None
    has_tried_ai: bool = False


class SuggestionSourceManager:
    def __init__(
        self,
        session: SuggestionSession,
        client: GenerativeSuggestionService,
        resolver: TemplateCatalogResolver,
        *,
        journal: ErrorJournal,
        observer: PerformanceObserver,
        circuit_breaker: CircuitBreaker | None = None,
        retry_policy: RetryPolicy | None = None,
        auto_fallback: bool = True,
    ) -> None:
        self.session = session
        self.client = client
        self.resolver = resolver
        self.journal = journal
        self.observer = observer
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.retry_policy = retry_policy or RetryPolicy()
        if self.retry_policy.on_retry is None:
            self.retry_policy.on_retry = self._on_retry
        self.auto_fallback = auto_fallback

    async def generate(self, context: SuggestionContext) -> SuggestionResponse:
        missing = context.missing_required_fields()
        if missing:
            error = SuggestionValidationError(f"Missing required context fields: {', '.join(missing)}")
            self.journal.log_error(
                ErrorCategory.VALIDATION_ERROR,
                ErrorSeverity.LOW,
                error.user_message,
                error,
                {"missing_fields": missing},
            )
            metrics.suggestion_requests_total.labels(outcome="invalid").inc()
            raise error

        operation_id = self.observer.start("suggestion_generation", industry=context.industry)
        try:
            response = await self.retry_policy.execute(self._request_with_breaker(context))
        except RetryExhaustedError as exhausted:
            self.observer.complete(operation_id, success=False, error=exhausted.last_error.code)
            await self._handle_failure(context, exhausted.last_error)
            raise exhausted.last_error from exhausted
        except SuggestionServiceError as exc:
            self.observer.complete(operation_id, success=False, error=exc.code)
            await self._handle_failure(context, exc)
            raise

        self.observer.complete(operation_id, result_count=len(response.suggestions))
        self.session.has_tried_ai = True
        self.session.ai_candidates = list(response.suggestions)
        self.session.metadata = response.metadata
        self.session.last_request = context
        self.session.service_healthy = True
        metrics.suggestion_requests_total.labels(outcome="success").inc()
        return response

    async def regenerate(self) -> SuggestionResponse:
        if self.session.last_request is None:
            raise SuggestionStateError()
        return await self.generate(self.session.last_request)

    def switch_source(self, target: TemplateOrigin) -> bool:
        target = TemplateOrigin(target)
        if target == TemplateOrigin.AI and not self.is_source_available(TemplateOrigin.AI):
            if self.auto_fallback:
                logger.info("AI source unhealthy, redirecting session=%s to catalog", self.session.session_id)
                self.session.selected_source = TemplateOrigin.CATALOG
                return True
            logger.warning("refusing switch to AI source while unhealthy session=%s", self.session.session_id)
            return False
        self.session.selected_source = target
        if target == TemplateOrigin.CATALOG:
            self._clear_ai()
        return True

    def clear(self) -> None:
        self._clear_ai()
        self.session.catalog_candidates = []
        self.session.catalog_error = None

    def _clear_ai(self) -> None:
        self.session.ai_candidates = []
        self.session.metadata = None
        self.session.last_request = None

    async def load_catalog(self, industry: str | None) -> list[CatalogCandidate]:
        resolution = await self.resolver.resolve(industry)
        self.session.catalog_candidates = list(resolution.candidates)
        self.session.catalog_error = None
        return self.session.catalog_candidates

    async def probe_health(self) -> bool:
        try:
            health = await self.client.health()
            healthy = health.is_healthy
        except SuggestionServiceError as exc:
            self.journal.log_network_error(HEALTH_PATH, "GET", exc)
            healthy = False
        healthy = healthy and self.circuit_breaker.state() != CircuitState.OPEN
        self.session.service_healthy = healthy
        return healthy

    def merged_candidates(self) -> list[TemplateCandidate]:
        ai = list(self.session.ai_candidates)
        catalog = list(self.session.catalog_candidates)
        if self.session.selected_source == TemplateOrigin.AI:
            return [*ai, *catalog]
        return [*catalog, *ai]

    def candidates_for_source(self, source: TemplateOrigin | None = None) -> list[TemplateCandidate]:
        source = TemplateOrigin(source or self.session.selected_source)
        if source == TemplateOrigin.AI:
            return list(self.session.ai_candidates)
        return list(self.session.catalog_candidates)

    def is_source_available(self, source: TemplateOrigin) -> bool:
        if TemplateOrigin(source) == TemplateOrigin.AI:
            return self.session.service_healthy and self.circuit_breaker.state() != CircuitState.OPEN
        return bool(self.session.catalog_candidates) or self.session.catalog_error is None

    def stats(self) -> dict[str, Any]:
        session = self.session
        return {
            "session_id": session.session_id,
            "selected_source": session.selected_source.value,
            "service_healthy": session.service_healthy,
            "circuit_state": self.circuit_breaker.state().value,
            "total_templates": len(session.ai_candidates) + len(session.catalog_candidates),
            "ai_templates": len(session.ai_candidates),
            "catalog_templates": len(session.catalog_candidates),
            "selected_source_count": len(self.candidates_for_source()),
            "has_fallen_back": (
                self.auto_fallback and session.selected_source == TemplateOrigin.CATALOG and session.has_tried_ai
            ),
            "can_regenerate": session.last_request is not None,
        }

    def snapshot(self) -> dict[str, Any]:
        return {
            **self.stats(),
            "metadata": self.session.metadata.model_dump(by_alias=True) if self.session.metadata else None,
            "candidates": [candidate.model_dump(mode="json") for candidate in self.merged_candidates()],
        }

    def _request_with_breaker(self, context: SuggestionContext) -> Callable[[], Awaitable[SuggestionResponse]]:
        async def _inner() -> SuggestionResponse:
            self.circuit_breaker.before_call()
            try:
                response = await self.client.request(context)
            except asyncio.CancelledError:
                self.circuit_breaker.abandon_probe()
                raise
            except Exception:
                self.circuit_breaker.record_failure()
                raise
            self.circuit_breaker.record_success()
            return response

        return _inner

    def _on_retry(self, attempt: int, error: SuggestionServiceError, delay: float) -> None:
        logger.info(
            "retrying suggestion request session=%s attempt=%s reason=%s delay=%.2fs",
            self.session.session_id,
            attempt,
            error.reason_code,
            delay,
        )
        self.observer.record_retry(attempt, error.reason_code)

    async def _handle_failure(self, context: SuggestionContext, error: SuggestionServiceError) -> None:
        metrics.suggestion_requests_total.labels(outcome=error.reason_code).inc()
        self.journal.log_error(
            error.category,
            _severity_for(error),
            f"AI suggestion request failed: {error.code}",
            error,
            {"industry": context.industry, "reason_code": error.reason_code, "retryable": error.retryable},
        )
        self.session.has_tried_ai = True
        if not self.auto_fallback:
            return

        catalog: list[CatalogCandidate] = []
        catalog_error: str | None = None
        try:
            resolution = await self.resolver.resolve(context.industry)
            catalog = list(resolution.candidates)
        except OkrCoreError as load_error:
            catalog_error = load_error.user_message
            self.journal.log_template_error(
                "Catalog fallback failed after AI suggestion failure",
                load_error,
                industry_slug=context.industry,
                fallback_attempted=True,
            )
        self.session.selected_source = TemplateOrigin.CATALOG
        self.session.catalog_candidates = catalog
        self.session.catalog_error = catalog_error
        emit_suggestion_fallback(
            session_id=self.session.session_id,
            industry=context.industry,
            error_code=error.code,
            catalog_count=len(catalog),
        )


def _severity_for(error: SuggestionServiceError) -> ErrorSeverity:
    if error.severity == "critical":
        return ErrorSeverity.CRITICAL
    if error.severity == "warning":
        return ErrorSeverity.MEDIUM
    return ErrorSeverity.HIGH
