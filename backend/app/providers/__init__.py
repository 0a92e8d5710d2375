from app.providers.circuit_breaker import CircuitBreaker, CircuitState
from app.providers.retry import RetryExhaustedError, RetryPolicy
from app.providers.suggestion_client import GenerativeSuggestionService, HttpSuggestionClient

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "GenerativeSuggestionService",
    "HttpSuggestionClient",
    "RetryExhaustedError",
    "RetryPolicy",
]
