from __future__ import annotations

import uuid
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock

from fastapi import Depends, Header, Request

from app.core.config import Settings, get_settings
from app.db.redis_client import get_redis_client
from app.db.store import PersistentStore, SqlAlchemyStore
from app.providers.circuit_breaker import CircuitBreaker
from app.providers.retry import RetryPolicy
from app.providers.suggestion_client import GenerativeSuggestionService, HttpSuggestionClient
from app.services.action_lifecycle import ActionLifecycleService
from app.services.error_journal import ErrorJournal
from app.services.objective_service import ObjectiveService
from app.services.objective_validation import StoreDateDimension
from app.services.performance_observer import PerformanceObserver
from app.services.suggestion_source_manager import SuggestionSession, SuggestionSourceManager
from app.services.template_cache import InMemoryTemplateCache, RedisTemplateCache, TemplateCache
from app.services.template_resolver import TemplateCatalogResolver

MAX_TRACKED_SESSIONS = 1000


class SuggestionSessionRegistry:
    """Suggestion sessions keyed by the caller's X-Session-ID; least recently used are evicted."""

    def __init__(self, *, max_sessions: int = MAX_TRACKED_SESSIONS) -> None:
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, SuggestionSession] = OrderedDict()
        self._lock = Lock()

    def get_or_create(self, session_id: str) -> SuggestionSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = SuggestionSession(session_id=session_id)
                self._sessions[session_id] = session
            self._sessions.move_to_end(session_id)
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)
            return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


@dataclass
class CoreServices:
    settings: Settings
    store: PersistentStore
    journal: ErrorJournal
    observer: PerformanceObserver
    resolver: TemplateCatalogResolver
    suggestion_client: GenerativeSuggestionService
    circuit_breaker: CircuitBreaker
    objectives: ObjectiveService
    actions: ActionLifecycleService
    sessions: SuggestionSessionRegistry

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.settings.suggestion_retry_max_attempts,
            base_delay_seconds=self.settings.suggestion_retry_base_delay_seconds,
            max_delay_seconds=self.settings.suggestion_retry_max_delay_seconds,
        )

    def suggestion_manager(self, session: SuggestionSession) -> SuggestionSourceManager:
        return SuggestionSourceManager(
            session,
            self.suggestion_client,
            self.resolver,
            journal=self.journal,
            observer=self.observer,
            circuit_breaker=self.circuit_breaker,
            retry_policy=self.retry_policy(),
            auto_fallback=self.settings.suggestion_auto_fallback,
        )


def _build_cache(settings: Settings) -> TemplateCache:
    if settings.template_cache_backend == "redis":
        client = get_redis_client(settings)
        if client is not None:
            return RedisTemplateCache(client, ttl_seconds=settings.template_cache_ttl_seconds)
    return InMemoryTemplateCache(ttl_seconds=settings.template_cache_ttl_seconds)


def build_core_services(
    settings: Settings,
    *,
    store: PersistentStore | None = None,
    suggestion_client: GenerativeSuggestionService | None = None,
    cache: TemplateCache | None = None,
) -> CoreServices:
    store = store or SqlAlchemyStore()
    journal = ErrorJournal(max_entries=settings.error_journal_max_entries)
    observer = PerformanceObserver(slow_threshold_ms=settings.slow_operation_threshold_ms)
    resolver = TemplateCatalogResolver(
        store,
        journal=journal,
        observer=observer,
        cache=cache or _build_cache(settings),
    )
    return CoreServices(
        settings=settings,
        store=store,
        journal=journal,
        observer=observer,
        resolver=resolver,
        suggestion_client=suggestion_client
        or HttpSuggestionClient(
            settings.suggestion_service_url,
            timeout_seconds=settings.suggestion_service_timeout_seconds,
        ),
        circuit_breaker=CircuitBreaker(
            failure_threshold=settings.suggestion_circuit_failure_threshold,
            reset_timeout=settings.suggestion_circuit_reset_timeout_seconds,
        ),
        objectives=ObjectiveService(
            store,
            journal=journal,
            date_dimension=StoreDateDimension(store),
            duplicate_threshold=settings.duplicate_similarity_threshold,
            max_bulk_size=settings.max_bulk_size,
            high_priority_ratio=settings.high_priority_warning_ratio,
        ),
        actions=ActionLifecycleService(store, journal=journal),
        sessions=SuggestionSessionRegistry(),
    )


_services: CoreServices | None = None


def get_services() -> CoreServices:
    global _services
    if _services is None:
        _services = build_core_services(get_settings())
    return _services


def reset_services() -> None:
    global _services
    _services = None


def get_suggestion_manager(
    request: Request,
    x_session_id: str | None = Header(default=None),
    services: CoreServices = Depends(get_services),
) -> SuggestionSourceManager:
    session_id = x_session_id or getattr(request.state, "session_id", None) or uuid.uuid4().hex
    request.state.session_id = session_id
    return services.suggestion_manager(services.sessions.get_or_create(session_id))
