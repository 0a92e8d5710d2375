from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any, Protocol

from pydantic import ValidationError

from app.core import metrics
from app.db.store import PersistentStore
from app.schemas.objectives import (
    BulkValidationResult,
    DuplicateCheck,
    ExistingObjective,
    ObjectiveDraft,
    SimilarObjective,
    ValidationIssue,
)

logger = logging.getLogger("okr.validation")

REQUIRED_FIELD = "REQUIRED_FIELD"
INVALID_TITLE = "INVALID_TITLE"
INVALID_TARGET_VALUE = "INVALID_TARGET_VALUE"
INVALID_TARGET_DATE = "INVALID_TARGET_DATE"
INVALID_GRANULARITY = "INVALID_GRANULARITY"
INVALID_PRIORITY = "INVALID_PRIORITY"
INVALID_METRIC_TYPE = "INVALID_METRIC_TYPE"
INVALID_PLATFORM = "INVALID_PLATFORM"
INVALID_FIELD = "INVALID_FIELD"
DUPLICATE_OKR = "DUPLICATE_OKR"
PLATFORM_INCOMPATIBLE = "PLATFORM_INCOMPATIBLE"
BULK_SIZE_EXCEEDED = "BULK_SIZE_EXCEEDED"

BLOCKING_CODES = frozenset({DUPLICATE_OKR, BULK_SIZE_EXCEEDED})

_CODE_BY_FIELD = {
    "title": INVALID_TITLE,
    "target_value": INVALID_TARGET_VALUE,
    "target_date_id": INVALID_TARGET_DATE,
    "granularity": INVALID_GRANULARITY,
    "priority": INVALID_PRIORITY,
    "metric_type_id": INVALID_METRIC_TYPE,
    "platform_id": INVALID_PLATFORM,
}

_MESSAGE_BY_FIELD = {
    "target_value": "Target value must be positive",
    "target_date_id": "Please select a target date",
    "granularity": "Please select a valid measurement frequency",
    "priority": "Priority must be between 1 (High) and 3 (Low)",
    "metric_type_id": "Please select a metric type",
    "platform_id": "Invalid platform ID",
}


# Valid baseline used to check one field in isolation.
_FIELD_PROBE: dict[str, Any] = {
    "title": "Probe objective",
    "target_value": 1.0,
    "target_date_id": 1,
    "granularity": "monthly",
    "metric_type_id": "probe",
    "priority": 2,
}


def levenshtein(a: str, b: str) -> int:
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    current[j - 1] + 1,
                    previous[j] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1 - edit distance / longer length; two empty strings are identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein(a, b)) / longest


def normalize_title(title: str) -> str:
    return title.strip().lower()


@dataclass(frozen=True)
class DateCheck:
    is_valid: bool
    message: str


@dataclass(frozen=True)
class CompatibilityCheck:
    is_compatible: bool
    message: str


class DateDimension(Protocol):
    async def check(self, target_date_id: int) -> DateCheck: ...


class PlatformCompatibility(Protocol):
    async def check(self, platform_id: str, metric_type_id: str) -> CompatibilityCheck: ...


class PermissiveDateDimension:
    async def check(self, target_date_id: int) -> DateCheck:
        if target_date_id <= 0:
            return DateCheck(False, "Target date is required")
        return DateCheck(True, "Target date is valid")


class StoreDateDimension:
    """Resolves ``dim_date`` rows; the target must exist and must not lie in the past."""

    def __init__(self, store: PersistentStore, *, today: Callable[[], date] = lambda: datetime.now(UTC).date()) -> None:
        self.store = store
        self._today = today

    async def check(self, target_date_id: int) -> DateCheck:
        if target_date_id <= 0:
            return DateCheck(False, "Target date is required")
        row = await self.store.get("dim_date", target_date_id)
        if row is None:
            return DateCheck(False, "Target date does not exist")
        value = row["date_value"]
        if isinstance(value, datetime):
            value = value.date()
        if value < self._today():
            return DateCheck(False, "Target date must be in the future")
        return DateCheck(True, "Target date is valid")


class PermissivePlatformCompatibility:
    async def check(self, platform_id: str, metric_type_id: str) -> CompatibilityCheck:
        return CompatibilityCheck(True, "Platform and metric type are compatible")


def _issues_from_schema_error(exc: ValidationError) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for error in exc.errors():
        loc = error.get("loc") or ()
        field = ".".join(str(part) for part in loc) or "draft"
        root = str(loc[0]) if loc else field
        if error["type"] == "missing":
            issues.append(ValidationIssue(field=field, message=f"{field} is required", code=REQUIRED_FIELD))
            continue
        if root == "metric_type_id" and error["type"] == "string_too_short":
            issues.append(ValidationIssue(field=field, message=_MESSAGE_BY_FIELD[root], code=REQUIRED_FIELD))
            continue
        if root == "title":
            message = "Title cannot exceed 200 characters" if error["type"] == "string_too_long" else "Title must be at least 3 characters"
        else:
            message = _MESSAGE_BY_FIELD.get(root, error["msg"])
        issues.append(ValidationIssue(field=field, message=message, code=_CODE_BY_FIELD.get(root, INVALID_FIELD)))
    return issues


class ObjectiveValidator:
    """Schema, business-rule and near-duplicate validation for objective drafts."""

    def __init__(
        self,
        existing_objectives: Iterable[ExistingObjective] = (),
        *,
        date_dimension: DateDimension | None = None,
        platform_compatibility: PlatformCompatibility | None = None,
        duplicate_threshold: float = 0.8,
        max_bulk_size: int = 50,
        high_priority_ratio: float = 0.3,
    ) -> None:
        self.existing_objectives = list(existing_objectives)
        self.date_dimension = date_dimension or PermissiveDateDimension()
        self.platform_compatibility = platform_compatibility or PermissivePlatformCompatibility()
        self.duplicate_threshold = duplicate_threshold
        self.max_bulk_size = max_bulk_size
        self.high_priority_ratio = high_priority_ratio

    def check_for_duplicates(self, title: str) -> DuplicateCheck:
        if not title or not self.existing_objectives:
            return DuplicateCheck(is_duplicate=False)
        normalized = normalize_title(title)
        best: SimilarObjective | None = None
        for existing in self.existing_objectives:
            if not existing.is_active:
                continue
            score = similarity(normalized, normalize_title(existing.title))
            if score >= self.duplicate_threshold and (best is None or score > best.similarity):
                best = SimilarObjective(id=existing.id, title=existing.title, similarity=score)
        if best is None:
            return DuplicateCheck(is_duplicate=False)
        return DuplicateCheck(is_duplicate=True, similar_objective=best)

    async def validate_objective(
        self,
        draft: ObjectiveDraft | Mapping[str, Any],
        *,
        allow_duplicates: bool = False,
    ) -> list[ValidationIssue]:
        data = draft.model_dump() if isinstance(draft, ObjectiveDraft) else dict(draft)
        issues: list[ValidationIssue] = []
        try:
            ObjectiveDraft.model_validate(data)
        except ValidationError as exc:
            issues.extend(_issues_from_schema_error(exc))
        invalid_fields = {issue.field for issue in issues}

        title = data.get("title")
        if isinstance(title, str) and title and not allow_duplicates:
            duplicate = self.check_for_duplicates(title)
            if duplicate.is_duplicate and duplicate.similar_objective is not None:
                similar = duplicate.similar_objective
                issues.append(
                    ValidationIssue(
                        field="title",
                        message=(
                            f'Similar OKR already exists: "{similar.title}" '
                            f"({round(similar.similarity * 100)}% similarity)"
                        ),
                        code=DUPLICATE_OKR,
                    )
                )

        target_date_id = data.get("target_date_id")
        if "target_date_id" not in invalid_fields and isinstance(target_date_id, int):
            date_check = await self.date_dimension.check(target_date_id)
            if not date_check.is_valid:
                issues.append(ValidationIssue(field="target_date_id", message=date_check.message, code=INVALID_TARGET_DATE))

        platform_id = data.get("platform_id")
        metric_type_id = data.get("metric_type_id")
        if platform_id and metric_type_id:
            compatibility = await self.platform_compatibility.check(platform_id, metric_type_id)
            if not compatibility.is_compatible:
                issues.append(ValidationIssue(field="platform_id", message=compatibility.message, code=PLATFORM_INCOMPATIBLE))

        for issue in issues:
            metrics.validation_issues_total.labels(code=issue.code).inc()
        return issues

    async def validate_field(self, field: str, value: Any) -> list[ValidationIssue]:
        if field not in ObjectiveDraft.model_fields:
            return []
        try:
            ObjectiveDraft.model_validate({**_FIELD_PROBE, field: value})
        except ValidationError as exc:
            return [issue for issue in _issues_from_schema_error(exc) if issue.field == field]
        if field == "title" and isinstance(value, str):
            duplicate = self.check_for_duplicates(value)
            if duplicate.is_duplicate and duplicate.similar_objective is not None:
                return [
                    ValidationIssue(
                        field=field,
                        message=f'Similar OKR exists: "{duplicate.similar_objective.title}"',
                        code=DUPLICATE_OKR,
                    )
                ]
        return []

    async def validate_bulk(
        self,
        drafts: Sequence[ObjectiveDraft | Mapping[str, Any]],
        *,
        allow_duplicates: bool = False,
    ) -> BulkValidationResult:
        if len(drafts) > self.max_bulk_size:
            metrics.validation_issues_total.labels(code=BULK_SIZE_EXCEEDED).inc()
            return BulkValidationResult(
                is_valid=False,
                errors=[
                    ValidationIssue(
                        field="bulk",
                        message=f"Maximum {self.max_bulk_size} OKRs allowed per bulk operation",
                        code=BULK_SIZE_EXCEEDED,
                    )
                ],
                warnings=[],
                can_proceed=False,
            )

        rows = [draft.model_dump() if isinstance(draft, ObjectiveDraft) else dict(draft) for draft in drafts]
        errors: list[ValidationIssue] = []
        warnings: list[str] = []
        for index, row in enumerate(rows):
            for issue in await self.validate_objective(row, allow_duplicates=allow_duplicates):
                errors.append(issue.model_copy(update={"field": f"okr[{index}].{issue.field}"}))

        title_counts = Counter(
            normalize_title(row["title"]) for row in rows if isinstance(row.get("title"), str) and row["title"].strip()
        )
        for title, count in title_counts.items():
            if count > 1:
                warnings.append(f'Duplicate titles in batch: "{title}"')

        high_priority = sum(1 for row in rows if row.get("priority") == 1)
        if high_priority > math.ceil(round(len(rows) * self.high_priority_ratio, 9)):
            warnings.append(f"High number of high-priority OKRs ({high_priority}). Consider balancing priorities.")

        result = BulkValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            can_proceed=not any(issue.code in BLOCKING_CODES for issue in errors),
        )
        logger.info(
            "bulk validation size=%s errors=%s warnings=%s can_proceed=%s",
            len(rows),
            len(errors),
            len(warnings),
            result.can_proceed,
        )
        return result
