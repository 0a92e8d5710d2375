import pytest

from app.providers.circuit_breaker import CircuitBreaker, CircuitState
from app.providers.errors import CircuitOpenError


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_circuit_breaker_opens_after_threshold() -> None:
    clock = FakeClock(100.0)
    breaker = CircuitBreaker(failure_threshold=2, reset_timeout=5.0, clock=clock)
    breaker.before_call()
    breaker.record_failure()
    breaker.before_call()
    breaker.record_failure()
    clock.now = 101.0
    assert breaker.state() == CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        breaker.before_call()


def test_circuit_breaker_transitions_to_half_open_and_closes_on_success() -> None:
    clock = FakeClock(10.0)
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=3.0, clock=clock)
    breaker.before_call()
    breaker.record_failure()
    clock.now = 11.0
    with pytest.raises(CircuitOpenError):
        breaker.before_call()
    clock.now = 13.1
    assert breaker.state() == CircuitState.HALF_OPEN
    breaker.before_call()
    breaker.record_success()
    assert breaker.state() == CircuitState.CLOSED
    breaker.before_call()


def test_circuit_breaker_half_open_failed_probe_reopens() -> None:
    clock = FakeClock(20.0)
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=2.0, clock=clock)
    breaker.before_call()
    breaker.record_failure()
    clock.now = 22.1
    breaker.before_call()
    breaker.record_failure()
    clock.now = 22.2
    with pytest.raises(CircuitOpenError):
        breaker.before_call()


def test_half_open_admits_a_single_probe_until_abandoned() -> None:
    clock = FakeClock(0.0)
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=1.0, clock=clock)
    breaker.record_failure()
    clock.now = 1.5
    breaker.before_call()
    assert breaker.allows_requests() is False
    with pytest.raises(CircuitOpenError):
        breaker.before_call()
    breaker.abandon_probe()
    assert breaker.allows_requests() is True
    breaker.before_call()


def test_success_resets_consecutive_failures() -> None:
    breaker = CircuitBreaker(failure_threshold=3, reset_timeout=5.0, clock=FakeClock())
    breaker.record_failure()
    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()
    snapshot = breaker.snapshot()
    assert snapshot.state == CircuitState.CLOSED
    assert snapshot.consecutive_failures == 1
