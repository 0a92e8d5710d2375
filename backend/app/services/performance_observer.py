from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from threading import Lock
from typing import Any

from app.core import metrics
from app.observability.events import emit_performance_alert

logger = logging.getLogger("okr.performance")

MAX_ALERTS = 20
MAX_OPERATIONS = 500


@dataclass
class OperationMetric:
    operation: str
    started_at: float
    metadata: dict[str, Any] = field(default_factory=dict)
    duration_ms: float | None = None
    success: bool | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "duration_ms": None if self.duration_ms is None else round(self.duration_ms, 2),
            "success": self.success,
            "error": self.error,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class PerformanceAlert:
    type: str
    message: str
    threshold: float
    actual_value: float
    timestamp: str


class PerformanceObserver:
    """Start/complete operation timing with slow-operation and fallback alerts."""

    def __init__(
        self,
        *,
        slow_threshold_ms: float = 2000.0,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.slow_threshold_ms = slow_threshold_ms
        self._clock = clock
        self._metrics: dict[str, OperationMetric] = {}
        self._alerts: deque[PerformanceAlert] = deque(maxlen=MAX_ALERTS)
        self._retries = 0
        self._lock = Lock()

    def start(self, operation: str, **metadata: Any) -> str:
        operation_id = f"{operation}-{uuid.uuid4().hex[:12]}"
        with self._lock:
            self._metrics[operation_id] = OperationMetric(operation=operation, started_at=self._clock(), metadata=metadata)
            while len(self._metrics) > MAX_OPERATIONS:
                self._metrics.pop(next(iter(self._metrics)))
        logger.debug("started operation=%s id=%s", operation, operation_id)
        return operation_id

    def track_template_loading(self, industry_slug: str | None) -> str:
        return self.start(
            "template_loading",
            industry_slug=industry_slug,
            query_method="exact_match",
            fallback_used=False,
            result_count=0,
        )

    def complete(
        self,
        operation_id: str,
        *,
        success: bool = True,
        error: str | None = None,
        **metadata: Any,
    ) -> OperationMetric | None:
        with self._lock:
            metric = self._metrics.get(operation_id)
            if metric is None:
                logger.warning("no metric found for operation id=%s", operation_id)
                return None
            metric.duration_ms = (self._clock() - metric.started_at) * 1000.0
            metric.success = success
            metric.error = error
            metric.metadata.update(metadata)
        metrics.operation_duration_seconds.labels(operation=metric.operation).observe(metric.duration_ms / 1000.0)
        self._check_alerts(metric)
        return metric

    def record_retry(self, attempt: int, reason: str) -> None:
        with self._lock:
            self._retries += 1
        metrics.suggestion_retries_total.inc()
        logger.info("retry attempt=%s reason=%s", attempt, reason)

    def _check_alerts(self, metric: OperationMetric) -> None:
        if metric.duration_ms is not None and metric.duration_ms > self.slow_threshold_ms:
            self._add_alert(
                metric,
                PerformanceAlert(
                    type="slow_loading",
                    message=(
                        f"{metric.operation} took {metric.duration_ms:.2f}ms, "
                        f"exceeding {self.slow_threshold_ms:.0f}ms threshold"
                    ),
                    threshold=self.slow_threshold_ms,
                    actual_value=metric.duration_ms,
                    timestamp=datetime.now(UTC).isoformat(),
                ),
            )
        if metric.metadata.get("fallback_used"):
            self._add_alert(
                metric,
                PerformanceAlert(
                    type="fallback_usage",
                    message=f"Fallback query method used: {metric.metadata.get('query_method')}",
                    threshold=0.2,
                    actual_value=1.0,
                    timestamp=datetime.now(UTC).isoformat(),
                ),
            )

    def _add_alert(self, metric: OperationMetric, alert: PerformanceAlert) -> None:
        with self._lock:
            self._alerts.append(alert)
        emit_performance_alert(
            alert_type=alert.type,
            operation=metric.operation,
            message=alert.message,
            details={"threshold": alert.threshold, "actual_value": round(alert.actual_value, 2)},
        )

    def alerts(self) -> list[PerformanceAlert]:
        with self._lock:
            return list(self._alerts)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            completed = [metric for metric in self._metrics.values() if metric.duration_ms is not None]
            recent_alerts = list(self._alerts)[-5:]
            retries = self._retries
        if not completed:
            return {
                "total_operations": 0,
                "average_duration_ms": 0.0,
                "success_rate": 0.0,
                "fallback_usage_rate": 0.0,
                "retry_count": retries,
                "recent_alerts": [asdict(alert) for alert in recent_alerts],
            }
        total = len(completed)
        return {
            "total_operations": total,
            "average_duration_ms": round(sum(metric.duration_ms for metric in completed) / total, 2),
            "success_rate": sum(1 for metric in completed if metric.success) / total,
            "fallback_usage_rate": sum(1 for metric in completed if metric.metadata.get("fallback_used")) / total,
            "retry_count": retries,
            "recent_alerts": [asdict(alert) for alert in recent_alerts],
        }

    def export(self) -> list[dict[str, Any]]:
        with self._lock:
            return [metric.to_dict() for metric in self._metrics.values() if metric.duration_ms is not None]

    def clear(self) -> None:
        with self._lock:
            self._metrics.clear()
            self._alerts.clear()
            self._retries = 0
