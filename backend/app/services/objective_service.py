from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from app.core.errors import BulkLimitExceededError, DuplicateError, ObjectivePersistenceError, ObjectiveValidationError
from app.db.store import OrderBy, PersistentStore, QueryFilter, Row
from app.events.emitter import emit_event
from app.schemas.objectives import BulkValidationResult, ExistingObjective, ObjectiveDraft, ObjectiveOut, ValidationIssue
from app.services.error_journal import ErrorJournal
from app.services.objective_validation import (
    DUPLICATE_OKR,
    DateDimension,
    ObjectiveValidator,
    PlatformCompatibility,
)

logger = logging.getLogger("okr.objectives")

_EXISTING_SELECT = "SELECT * FROM okr_objectives WHERE brand_id = ? AND is_active = true"
_DATE_SELECT = "SELECT * FROM dim_date WHERE id = ?"
_OBJECTIVE_INSERT = "INSERT INTO okr_objectives"


class ObjectiveService:
    def __init__(
        self,
        store: PersistentStore,
        *,
        journal: ErrorJournal | None = None,
        date_dimension: DateDimension | None = None,
        platform_compatibility: PlatformCompatibility | None = None,
        duplicate_threshold: float = 0.8,
        max_bulk_size: int = 50,
        high_priority_ratio: float = 0.3,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.store = store
        self.journal = journal or ErrorJournal()
        self.date_dimension = date_dimension
        self.platform_compatibility = platform_compatibility
        self.duplicate_threshold = duplicate_threshold
        self.max_bulk_size = max_bulk_size
        self.high_priority_ratio = high_priority_ratio
        self._clock = clock

    async def existing_objectives(self, brand_id: str | None) -> list[ExistingObjective]:
        if not brand_id:
            return []
        with self.journal.store_failures(_EXISTING_SELECT, ObjectivePersistenceError, brand_id=brand_id):
            rows = await self.store.query(
                "okr_objectives",
                [QueryFilter.eq("brand_id", brand_id), QueryFilter.eq("is_active", True)],
                [OrderBy("created_at", descending=True)],
            )
        return [ExistingObjective(id=row["id"], title=row["title"], is_active=bool(row["is_active"])) for row in rows]

    async def validator_for(self, brand_id: str | None) -> ObjectiveValidator:
        return ObjectiveValidator(
            await self.existing_objectives(brand_id),
            date_dimension=self.date_dimension,
            platform_compatibility=self.platform_compatibility,
            duplicate_threshold=self.duplicate_threshold,
            max_bulk_size=self.max_bulk_size,
            high_priority_ratio=self.high_priority_ratio,
        )

    async def validate_objective(
        self,
        brand_id: str | None,
        draft: ObjectiveDraft,
        *,
        allow_duplicates: bool = False,
    ) -> list[ValidationIssue]:
        validator = await self.validator_for(brand_id)
        # The date dimension reads dim_date through the store.
        with self.journal.store_failures(_DATE_SELECT, ObjectivePersistenceError, brand_id=brand_id):
            return await validator.validate_objective(draft, allow_duplicates=allow_duplicates)

    async def validate_bulk(
        self,
        brand_id: str | None,
        drafts: Sequence[ObjectiveDraft],
        *,
        allow_duplicates: bool = False,
    ) -> BulkValidationResult:
        validator = await self.validator_for(brand_id)
        with self.journal.store_failures(_DATE_SELECT, ObjectivePersistenceError, brand_id=brand_id):
            return await validator.validate_bulk(drafts, allow_duplicates=allow_duplicates)

    async def create_objective(
        self,
        brand_id: str,
        draft: ObjectiveDraft,
        *,
        allow_duplicate: bool = False,
    ) -> ObjectiveOut:
        issues = await self.validate_objective(brand_id, draft, allow_duplicates=allow_duplicate)
        if issues:
            if all(issue.code == DUPLICATE_OKR for issue in issues):
                raise DuplicateError(issues)
            raise ObjectiveValidationError(issues)
        with self.journal.store_failures(_OBJECTIVE_INSERT, ObjectivePersistenceError, brand_id=brand_id):
            row = await self.store.insert("okr_objectives", self._values(brand_id, draft))
            await self._audit(brand_id, row)
        return ObjectiveOut.model_validate(row)

    async def create_objectives_bulk(
        self,
        brand_id: str,
        drafts: Sequence[ObjectiveDraft],
        *,
        allow_duplicates: bool = False,
    ) -> tuple[list[ObjectiveOut], BulkValidationResult]:
        """Validates the whole batch first, then writes every row in one transaction."""
        if len(drafts) > self.max_bulk_size:
            raise BulkLimitExceededError(len(drafts), self.max_bulk_size)
        result = await self.validate_bulk(brand_id, drafts, allow_duplicates=allow_duplicates)
        if not result.is_valid:
            raise ObjectiveValidationError(result.errors, "Bulk objective validation failed.")
        with self.journal.store_failures(_OBJECTIVE_INSERT, ObjectivePersistenceError, brand_id=brand_id, batch_size=len(drafts)):
            rows = await self.store.insert_many("okr_objectives", [self._values(brand_id, draft) for draft in drafts])
            for row in rows:
                await self._audit(brand_id, row)
        return [ObjectiveOut.model_validate(row) for row in rows], result

    def _values(self, brand_id: str, draft: ObjectiveDraft) -> dict[str, Any]:
        return {
            "brand_id": brand_id,
            **draft.model_dump(),
            "is_active": True,
            "created_at": self._clock(),
        }

    async def _audit(self, brand_id: str, row: Row) -> None:
        await emit_event(
            self.store,
            row["id"],
            "okr_objective.created",
            {"brand_id": brand_id, "title": row["title"], "master_template_id": row.get("master_template_id")},
        )
        logger.info("objective created id=%s brand=%s", row["id"], brand_id)
