from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from app.providers.errors import SuggestionServiceError, classify_suggestion_error


T = TypeVar("T")


@dataclass(frozen=True)
class RetryExhaustedError(Exception):
    last_error: SuggestionServiceError
    attempts: int

    def __str__(self) -> str:
        return f"Retry exhausted after {self.attempts} attempts: {self.last_error}"


class RetryPolicy:
    def __init__(
        self,
        *,
        max_attempts: int = 3,
        base_delay_seconds: float = 1.0,
        max_delay_seconds: float = 30.0,
        jitter_ratio: float = 0.0,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
        random_fn: Callable[[float, float], float] = random.uniform,
        on_retry: Callable[[int, SuggestionServiceError, float], None] | None = None,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.jitter_ratio = jitter_ratio
        self.sleep_fn = sleep_fn
        self.random_fn = random_fn
        self.on_retry = on_retry

    def delay_for_attempt(self, attempt_number: int) -> float:
        base = min(self.max_delay_seconds, self.base_delay_seconds * (2 ** (attempt_number - 1)))
        if self.jitter_ratio <= 0:
            return base
        jitter_multiplier = 1.0 + self.random_fn(-self.jitter_ratio, self.jitter_ratio)
        return max(0.0, min(self.max_delay_seconds, base * jitter_multiplier))

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        classify_error: Callable[[Exception], SuggestionServiceError] = classify_suggestion_error,
    ) -> T:
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as exc:  # noqa: PERF203
                classified = classify_error(exc)
                if not classified.retryable:
                    if classified is exc:
                        raise
                    raise classified from exc
                if attempt >= self.max_attempts:
                    raise RetryExhaustedError(last_error=classified, attempts=attempt) from exc
                delay = self.delay_for_attempt(attempt)
                if self.on_retry is not None:
                    self.on_retry(attempt, classified, delay)
                await self.sleep_fn(delay)
                attempt += 1
