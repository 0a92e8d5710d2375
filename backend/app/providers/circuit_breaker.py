from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from app.providers.errors import CircuitOpenError


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerSnapshot:
    state: CircuitState
    consecutive_failures: int
    open_until: float | None


class CircuitBreaker:
    """Closed/open/half-open breaker; `clock` returns monotonic seconds and is injectable for tests."""

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._open_until: float | None = None
        self._half_open_probe_in_flight = False

    def snapshot(self) -> CircuitBreakerSnapshot:
        return CircuitBreakerSnapshot(
            state=self.state(),
            consecutive_failures=self._consecutive_failures,
            open_until=self._open_until,
        )

    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._open_until is not None and self._clock() >= self._open_until:
            self._state = CircuitState.HALF_OPEN
            self._half_open_probe_in_flight = False
        return self._state

    def allows_requests(self) -> bool:
        state = self.state()
        return state == CircuitState.CLOSED or (state == CircuitState.HALF_OPEN and not self._half_open_probe_in_flight)

    def before_call(self) -> None:
        state = self.state()
        if state == CircuitState.OPEN:
            raise CircuitOpenError()
        if state == CircuitState.HALF_OPEN:
            if self._half_open_probe_in_flight:
                raise CircuitOpenError("Suggestion circuit half-open probe already in progress.")
            self._half_open_probe_in_flight = True

    def record_success(self) -> None:
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._open_until = None
        self._half_open_probe_in_flight = False

    def record_failure(self) -> None:
        now = self._clock()
        if self.state() == CircuitState.HALF_OPEN:
            self._trip(now)
            return

        self._consecutive_failures += 1
        if self._consecutive_failures >= self.failure_threshold:
            self._trip(now)

    def _trip(self, now: float) -> None:
        self._state = CircuitState.OPEN
        self._open_until = now + self.reset_timeout
        self._half_open_probe_in_flight = False

    def abandon_probe(self) -> None:
        """Release a half-open probe whose caller went away without an outcome."""
        self._half_open_probe_in_flight = False
