from __future__ import annotations

import logging
import uuid
from collections import Counter, deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from threading import Lock
from typing import Any

from app.core.errors import PersistenceError
from app.db.store import StoreError

logger = logging.getLogger("okr.errors")


class ErrorCategory(StrEnum):
    TEMPLATE_LOADING = "template_loading"
    DATABASE_QUERY = "database_query"
    NETWORK_ERROR = "network_error"
    VALIDATION_ERROR = "validation_error"
    PERMISSION_ERROR = "permission_error"
    UNKNOWN = "unknown"


class ErrorSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_LOG_LEVEL_BY_SEVERITY = {
    ErrorSeverity.LOW: logging.INFO,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.ERROR,
}


@dataclass(frozen=True)
class ErrorEntry:
    id: str
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    timestamp: str
    error_type: str | None = None
    error_message: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["category"] = self.category.value
        payload["severity"] = self.severity.value
        return payload


class ErrorJournal:
    """Bounded, session-scoped journal of classified errors.

    Entries are kept newest-last; once ``max_entries`` is reached the oldest
    entry is evicted. Every entry is also written to the ``okr.errors`` logger
    at a level derived from its severity.
    """

    def __init__(self, *, max_entries: int = 100, session_id: str | None = None) -> None:
        self.max_entries = max_entries
        self.session_id = session_id or f"session-{uuid.uuid4().hex[:12]}"
        self._entries: deque[ErrorEntry] = deque(maxlen=max_entries)
        self._lock = Lock()

    def log_error(
        self,
        category: ErrorCategory | str,
        severity: ErrorSeverity | str,
        message: str,
        error: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> str:
        entry = ErrorEntry(
            id=f"error-{uuid.uuid4().hex[:12]}",
            category=ErrorCategory(category),
            severity=ErrorSeverity(severity),
            message=message,
            timestamp=datetime.now(UTC).isoformat(),
            error_type=type(error).__name__ if error is not None else None,
            error_message=str(error) if error is not None else None,
            context={"session_id": self.session_id, **(context or {})},
        )
        with self._lock:
            self._entries.append(entry)
        logger.log(
            _LOG_LEVEL_BY_SEVERITY[entry.severity],
            "[%s] %s",
            entry.category.value,
            message,
            extra={
                "category": entry.category.value,
                "severity": entry.severity.value,
                "error_id": entry.id,
                "session_id": self.session_id,
            },
        )
        return entry.id

    def log_template_error(
        self,
        message: str,
        error: BaseException | None = None,
        *,
        industry_slug: str | None = None,
        query_method: str | None = None,
        retry_count: int = 0,
        fallback_attempted: bool = False,
    ) -> str:
        severity = self._template_severity(error, retry_count=retry_count)
        return self.log_error(
            ErrorCategory.TEMPLATE_LOADING,
            severity,
            message,
            error,
            {
                "industry_slug": industry_slug,
                "query_method": query_method,
                "retry_count": retry_count,
                "fallback_attempted": fallback_attempted,
                "operation": "template_fetch",
            },
        )

    def log_database_error(self, query: str, error: BaseException, context: dict[str, Any] | None = None) -> str:
        return self.log_error(
            ErrorCategory.DATABASE_QUERY,
            ErrorSeverity.HIGH,
            f"Database query failed: {query}",
            error,
            {**(context or {}), "query": query},
        )

    @contextmanager
    def store_failures(self, query: str, error_cls: type[PersistenceError], **context: Any) -> Iterator[None]:
        """Journal a StoreError raised inside the block and re-raise it as ``error_cls``."""
        try:
            yield
        except StoreError as exc:
            self.log_database_error(query, exc, {"table": exc.table, "operation": exc.operation, **context})
            raise error_cls(str(exc), table=exc.table, operation=exc.operation) from exc

    def log_network_error(
        self,
        url: str,
        method: str,
        error: BaseException,
        *,
        status_code: int | None = None,
    ) -> str:
        return self.log_error(
            ErrorCategory.NETWORK_ERROR,
            ErrorSeverity.HIGH,
            f"Network request failed: {method} {url}",
            error,
            {"url": url, "method": method, "status_code": status_code},
        )

    @staticmethod
    def _template_severity(error: BaseException | None, *, retry_count: int) -> ErrorSeverity:
        text = str(error).lower() if error is not None else ""
        if "network" in text or "database" in text:
            return ErrorSeverity.HIGH
        if retry_count > 2:
            return ErrorSeverity.HIGH
        return ErrorSeverity.MEDIUM

    def export(self) -> list[dict[str, Any]]:
        with self._lock:
            return [entry.to_dict() for entry in self._entries]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, Any]:
        with self._lock:
            entries = list(self._entries)
        by_message: dict[str, dict[str, Any]] = {}
        for entry in entries:
            bucket = by_message.setdefault(entry.message, {"message": entry.message, "count": 0, "category": entry.category.value})
            bucket["count"] += 1
        top_errors = sorted(by_message.values(), key=lambda item: item["count"], reverse=True)[:5]
        return {
            "total_errors": len(entries),
            "errors_by_category": dict(Counter(entry.category.value for entry in entries)),
            "errors_by_severity": dict(Counter(entry.severity.value for entry in entries)),
            "recent_errors": [entry.to_dict() for entry in entries[-10:]],
            "top_errors": top_errors,
        }

    def generate_report(self) -> str:
        stats = self.stats()
        lines = [
            f"OKR Error Report - {datetime.now(UTC).isoformat()}",
            f"Session ID: {self.session_id}",
            f"Total Errors: {stats['total_errors']}",
            "",
            "Errors by Category:",
        ]
        lines.extend(f"  {category}: {count}" for category, count in stats["errors_by_category"].items())
        lines.append("")
        lines.append("Errors by Severity:")
        lines.extend(f"  {severity}: {count}" for severity, count in stats["errors_by_severity"].items())
        lines.append("")
        lines.append("Top Errors:")
        lines.extend(
            f"  {index}. {item['message']} ({item['count']} times, {item['category']})"
            for index, item in enumerate(stats["top_errors"], start=1)
        )
        lines.append("")
        lines.append("Recent Errors:")
        lines.extend(
            f"  {index}. [{item['severity']}] {item['message']} ({item['timestamp']})"
            for index, item in enumerate(stats["recent_errors"], start=1)
        )
        return "\n".join(lines) + "\n"
