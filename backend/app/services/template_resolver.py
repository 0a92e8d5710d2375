from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from app.core import metrics
from app.core.errors import TemplateResolutionError
from app.db.store import OrderBy, PersistentStore, QueryFilter, Row, StoreError
from app.observability.events import emit_template_resolution
from app.schemas.templates import CatalogCandidate, QueryMethod, TemplateResolution
from app.services.error_journal import ErrorJournal
from app.services.performance_observer import PerformanceObserver
from app.services.template_cache import TemplateCache

logger = logging.getLogger("okr.templates")

DEFAULT_CONFIDENCE = 0.85
DEFAULT_PRIMARY_TARGET = 10.0
_TIMEFRAMES = {"daily", "weekly", "monthly", "quarterly"}
_CATALOG_ORDER = (OrderBy("priority_level"), OrderBy("category"))
_TIER_QUERIES = {
    QueryMethod.EXACT_MATCH: "SELECT * FROM okr_master WHERE industry = ? AND is_active = true",
    QueryMethod.CONTAINS_MATCH: "SELECT * FROM okr_master WHERE industry ILIKE ? AND is_active = true",
    QueryMethod.ALL_TEMPLATES: "SELECT * FROM okr_master WHERE is_active = true",
}


def candidate_from_master(row: Row) -> CatalogCandidate:
    timeframe = row.get("suggested_timeframe")
    return CatalogCandidate(
        id=row["id"],
        okr_master_id=row["id"],
        industry=row.get("industry"),
        title=row["objective_title"],
        description=row.get("objective_description") or "",
        category=row["category"],
        priority=min(3, max(1, int(row.get("priority_level") or 2))),
        suggested_target_value=0.0,
        suggested_timeframe=timeframe if timeframe in _TIMEFRAMES else "quarterly",
        applicable_platforms=[],
        metric_type_id="",
        confidence_score=DEFAULT_CONFIDENCE,
        reasoning=f"Suggested for {row.get('industry')} industry in {row['category']} category",
    )


class TemplateCatalogResolver:
    """Cascading catalog lookup: exact industry, then contains match, then every active template."""

    def __init__(
        self,
        store: PersistentStore,
        *,
        journal: ErrorJournal,
        observer: PerformanceObserver,
        cache: TemplateCache | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.store = store
        self.journal = journal
        self.observer = observer
        self.cache = cache
        self._clock = clock

    async def resolve(self, industry_slug: str | None) -> TemplateResolution:
        started = self._clock()
        slug = (industry_slug or "").strip()
        if not slug:
            operation_id = self.observer.track_template_loading(industry_slug)
            resolution = TemplateResolution(
                industry_slug=industry_slug,
                candidates=[],
                query_method=QueryMethod.EXACT_MATCH,
                fallback_used=False,
                execution_time_ms=(self._clock() - started) * 1000.0,
            )
            self.observer.complete(
                operation_id,
                industry_slug=industry_slug,
                query_method=resolution.query_method.value,
                fallback_used=False,
                result_count=0,
            )
            self._record(resolution)
            return resolution

        if self.cache is not None:
            cached = self.cache.get(slug)
            if cached is not None:
                self._record(cached, cached=True)
                return cached

        operation_id = self.observer.track_template_loading(slug)
        query_method = QueryMethod.EXACT_MATCH
        try:
            rows = await self._fetch_tier(slug, query_method, [QueryFilter.eq("industry", slug)])
            if not rows:
                query_method = QueryMethod.CONTAINS_MATCH
                rows = await self._fetch_tier(slug, query_method, [QueryFilter.contains("industry", slug)])
            if not rows:
                query_method = QueryMethod.ALL_TEMPLATES
                rows = await self._fetch_tier(slug, query_method, [])
        except TemplateResolutionError as exc:
            self.observer.complete(operation_id, success=False, error=str(exc), query_method=query_method.value)
            metrics.template_resolutions_total.labels(query_method=query_method.value, status="error").inc()
            raise

        candidates = await self._enrich([candidate_from_master(row) for row in rows])
        resolution = TemplateResolution(
            industry_slug=slug,
            candidates=candidates,
            query_method=query_method,
            fallback_used=query_method != QueryMethod.EXACT_MATCH,
            execution_time_ms=(self._clock() - started) * 1000.0,
        )
        self.observer.complete(
            operation_id,
            industry_slug=slug,
            query_method=query_method.value,
            fallback_used=resolution.fallback_used,
            result_count=resolution.result_count,
        )
        if self.cache is not None:
            self.cache.set(slug, resolution)
        self._record(resolution)
        return resolution

    def invalidate_industry(self, industry: str | None) -> list[str]:
        if self.cache is None:
            return []
        return self.cache.invalidate_industry(industry)

    async def _fetch_tier(self, slug: str, query_method: QueryMethod, filters: list[QueryFilter]) -> list[Row]:
        filters = [QueryFilter.eq("is_active", True), *filters]
        try:
            return await self.store.query("okr_master", filters, _CATALOG_ORDER)
        except StoreError as exc:
            self.journal.log_database_error(
                _TIER_QUERIES[query_method],
                exc,
                {
                    "table": "okr_master",
                    "filters": [item.describe() for item in filters],
                    "query_method": query_method.value,
                },
            )
            raise TemplateResolutionError(
                f"Template lookup failed during {query_method.value}: {exc}",
                industry_slug=slug,
                query_method=query_method.value,
            ) from exc

    async def _enrich(self, candidates: Sequence[CatalogCandidate]) -> list[CatalogCandidate]:
        if not candidates:
            return []
        master_ids = [candidate.okr_master_id for candidate in candidates]
        try:
            metric_rows = await self.store.query(
                "okr_master_metrics",
                [QueryFilter.in_list("okr_master_id", master_ids), QueryFilter.eq("is_primary", True)],
            )
        except StoreError as exc:
            self.journal.log_database_error(
                "SELECT * FROM okr_master_metrics WHERE okr_master_id IN (?)",
                exc,
                {"table": "okr_master_metrics", "query_method": "metrics_fetch", "template_count": len(master_ids)},
            )
            return list(candidates)

        primary_by_master: dict[str, Row] = {}
        for row in metric_rows:
            primary_by_master.setdefault(row["okr_master_id"], row)

        enriched: list[CatalogCandidate] = []
        for candidate in candidates:
            primary = primary_by_master.get(candidate.okr_master_id)
            if primary is None:
                enriched.append(candidate)
                continue
            target = primary.get("target_improvement_percentage")
            update: dict[str, Any] = {
                "metric_type_id": primary["metric_type_id"],
                "suggested_target_value": DEFAULT_PRIMARY_TARGET if target is None else float(target),
            }
            enriched.append(candidate.model_copy(update=update))
        return enriched

    def _record(self, resolution: TemplateResolution, *, cached: bool = False) -> None:
        metrics.template_resolutions_total.labels(
            query_method=resolution.query_method.value,
            status=resolution.status,
        ).inc()
        emit_template_resolution(
            industry_slug=resolution.industry_slug,
            query_method=resolution.query_method.value,
            fallback_used=resolution.fallback_used,
            result_count=resolution.result_count,
            execution_time_ms=resolution.execution_time_ms,
            cached=cached,
        )
