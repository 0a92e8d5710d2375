from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from app.core.errors import NetworkError, OkrCoreError, PermissionDeniedError


@dataclass(frozen=True)
class ErrorClassification:
    error_code: str
    reason_code: str
    retryable: bool
    severity: str


class SuggestionServiceError(OkrCoreError):
    """Classified failure of the generative suggestion endpoint."""

    code = "suggestion_service_error"
    category = "network_error"
    status_code = 502
    default_user_message = "The AI suggestion service failed. Please try again."
    reason_code = "internal_error"
    severity = "critical"

    def __init__(
        self,
        message: str | None = None,
        *,
        upstream_payload: dict[str, Any] | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.upstream_payload = upstream_payload


class SuggestionTimeoutError(SuggestionServiceError, NetworkError):
    code = "suggestion_timeout"
    reason_code = "timeout"
    retryable = True
    severity = "error"
    status_code = 504
    default_user_message = "Request timed out. The AI service may be busy. Please try again."


class SuggestionNetworkError(SuggestionServiceError, NetworkError):
    code = "suggestion_connection"
    reason_code = "connection_error"
    retryable = True
    severity = "error"
    status_code = 503
    default_user_message = "Unable to connect to AI service. Please check your connection."


class SuggestionUnavailableError(SuggestionServiceError, NetworkError):
    code = "suggestion_unavailable"
    reason_code = "dependency_unavailable"
    retryable = True
    severity = "error"
    status_code = 503
    default_user_message = "The AI service is temporarily unavailable. Please try again shortly."


class SuggestionRateLimitError(SuggestionServiceError):
    code = "suggestion_rate_limited"
    category = "network_error"
    reason_code = "rate_limited"
    retryable = False
    severity = "warning"
    status_code = 429
    default_user_message = "Too many requests. Please wait a moment before trying again."


class SuggestionValidationError(SuggestionServiceError):
    code = "suggestion_bad_request"
    category = "validation_error"
    reason_code = "bad_request"
    retryable = False
    severity = "warning"
    status_code = 422
    default_user_message = "Industry, brand name, and tenant ID are required."


class SuggestionPermissionError(SuggestionServiceError, PermissionDeniedError):
    code = "suggestion_auth"
    category = "permission_error"
    reason_code = "auth_failed"
    retryable = False
    severity = "critical"
    status_code = 403
    default_user_message = "The AI service rejected our credentials."


class SuggestionResponseFormatError(SuggestionServiceError):
    code = "suggestion_response_invalid"
    reason_code = "response_invalid"
    retryable = False
    severity = "error"
    status_code = 502
    default_user_message = "The AI service returned an unexpected response."


class CircuitOpenError(SuggestionServiceError):
    code = "suggestion_circuit_open"
    reason_code = "circuit_open"
    retryable = False
    severity = "warning"
    status_code = 503
    default_user_message = "The AI service is cooling down after repeated failures."


class SuggestionStateError(OkrCoreError):
    code = "suggestion_state"
    category = "validation_error"
    status_code = 409
    default_user_message = "No previous request to regenerate."


def classification_from_exception(exc: Exception) -> ErrorClassification:
    if isinstance(exc, SuggestionServiceError):
        return ErrorClassification(exc.code, exc.reason_code, exc.retryable, exc.severity)
    if isinstance(exc, TimeoutError | httpx.TimeoutException):
        return ErrorClassification("suggestion_timeout", "timeout", True, "error")
    if isinstance(exc, ConnectionError | httpx.ConnectError | httpx.NetworkError):
        return ErrorClassification("suggestion_connection", "connection_error", True, "error")
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code if exc.response is not None else 0
        if status_code in (401, 403):
            return ErrorClassification("suggestion_auth", "auth_failed", False, "critical")
        if status_code == 429:
            return ErrorClassification("suggestion_rate_limited", "rate_limited", False, "warning")
        if 400 <= status_code < 500:
            return ErrorClassification("suggestion_bad_request", "bad_request", False, "warning")
        if status_code >= 500:
            return ErrorClassification("suggestion_unavailable", "dependency_unavailable", True, "error")
    if isinstance(exc, httpx.HTTPError):
        return ErrorClassification("suggestion_unavailable", "dependency_unavailable", True, "error")
    return ErrorClassification("suggestion_service_error", "internal_error", False, "critical")


_ERROR_TYPES_BY_CODE: dict[str, type[SuggestionServiceError]] = {
    "suggestion_timeout": SuggestionTimeoutError,
    "suggestion_connection": SuggestionNetworkError,
    "suggestion_unavailable": SuggestionUnavailableError,
    "suggestion_rate_limited": SuggestionRateLimitError,
    "suggestion_bad_request": SuggestionValidationError,
    "suggestion_auth": SuggestionPermissionError,
}


def classify_suggestion_error(exc: Exception) -> SuggestionServiceError:
    if isinstance(exc, SuggestionServiceError):
        return exc
    classification = classification_from_exception(exc)
    error_type = _ERROR_TYPES_BY_CODE.get(classification.error_code, SuggestionServiceError)
    upstream_payload = None
    if isinstance(exc, httpx.HTTPStatusError) and exc.response is not None:
        try:
            body = exc.response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            upstream_payload = body
    classified = error_type(str(exc) or classification.reason_code, upstream_payload=upstream_payload)
    classified.__cause__ = exc
    return classified
