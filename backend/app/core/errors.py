from __future__ import annotations

from typing import Any


class OkrCoreError(Exception):
    """Base for every classified failure raised by the resolution, validation and lifecycle core."""

    code = "okr_error"
    category = "unknown"
    retryable = False
    status_code = 500
    default_user_message = "Something went wrong. Please try again."

    def __init__(
        self,
        message: str | None = None,
        *,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message or self.default_user_message)
        self.user_message = user_message or self.default_user_message
        self.details = details or {}


class DatabaseQueryError(OkrCoreError):
    code = "database_query_failed"
    category = "database_query"
    status_code = 503
    default_user_message = "The template catalog is temporarily unavailable."


class TemplateResolutionError(DatabaseQueryError):
    code = "template_resolution_failed"

    def __init__(self, message: str | None = None, *, industry_slug: str | None, query_method: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.industry_slug = industry_slug
        self.query_method = query_method
        self.details.setdefault("industry_slug", industry_slug)
        self.details.setdefault("query_method", query_method)


class PersistenceError(DatabaseQueryError):
    """A primary read or write against objectives, actions or their audit trail failed."""

    code = "persistence_failed"
    default_user_message = "Saving is temporarily unavailable. Please try again."

    def __init__(self, message: str | None = None, *, table: str, operation: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.table = table
        self.operation = operation
        self.details.setdefault("table", table)
        self.details.setdefault("operation", operation)


class ActionPersistenceError(PersistenceError):
    code = "action_persistence_failed"
    default_user_message = "Recommended actions are temporarily unavailable."


class ObjectivePersistenceError(PersistenceError):
    code = "objective_persistence_failed"
    default_user_message = "Objectives are temporarily unavailable."


class NetworkError(OkrCoreError):
    code = "network_error"
    category = "network_error"
    retryable = True
    status_code = 503
    default_user_message = "Unable to connect to AI service. Please check your connection."


class PermissionDeniedError(OkrCoreError):
    code = "permission_denied"
    category = "permission_error"
    status_code = 403
    default_user_message = "You do not have permission to perform this action."


class ObjectiveValidationError(OkrCoreError):
    code = "validation_failed"
    category = "validation_error"
    status_code = 422
    default_user_message = "The objective is not valid."

    def __init__(self, issues: list, message: str | None = None) -> None:
        super().__init__(message or f"Objective failed validation with {len(issues)} issue(s).")
        self.issues = issues
        self.details["issues"] = [issue.model_dump() for issue in issues]


class DuplicateError(ObjectiveValidationError):
    code = "duplicate_okr"
    status_code = 409
    default_user_message = "A similar objective already exists."


class BulkLimitExceededError(OkrCoreError):
    code = "bulk_size_exceeded"
    category = "validation_error"
    status_code = 422
    default_user_message = "Too many objectives in one bulk operation."

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Maximum {limit} OKRs allowed per bulk operation (got {size}).")
        self.size = size
        self.limit = limit
        self.details.update({"size": size, "limit": limit})


class InvalidTransitionError(OkrCoreError):
    code = "invalid_stage_transition"
    category = "validation_error"
    status_code = 409
    default_user_message = "This action cannot move to the requested stage."

    def __init__(self, current_stage: str, target_stage: str) -> None:
        super().__init__(f"Invalid action stage transition: {current_stage} -> {target_stage}")
        self.current_stage = current_stage
        self.target_stage = target_stage
        self.details.update({"from": current_stage, "to": target_stage})


class ActionNotFoundError(OkrCoreError):
    code = "action_not_found"
    category = "validation_error"
    status_code = 404
    default_user_message = "Recommended action not found."

    def __init__(self, action_id: str) -> None:
        super().__init__(f"Recommended action {action_id} not found")
        self.action_id = action_id
