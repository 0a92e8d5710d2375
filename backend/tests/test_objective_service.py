import json

import pytest

from app.core.errors import BulkLimitExceededError, DuplicateError, ObjectiveValidationError
from app.db.store import QueryFilter
from app.schemas.objectives import ObjectiveDraft
from app.services.objective_service import ObjectiveService
from app.services.objective_validation import StoreDateDimension


def _draft(title: str = "Grow Followers", **overrides) -> ObjectiveDraft:
    return ObjectiveDraft(
        title=title,
        target_value=500,
        target_date_id=overrides.pop("target_date_id", 1),
        granularity="monthly",
        metric_type_id="metric-1",
        priority=overrides.pop("priority", 2),
        **overrides,
    )


@pytest.fixture()
def objective_service(store, seed_catalog) -> ObjectiveService:
    return ObjectiveService(store, date_dimension=StoreDateDimension(store), max_bulk_size=3)


async def test_create_objective_persists_and_audits(store, objective_service) -> None:
    created = await objective_service.create_objective("brand-1", _draft(master_template_id="tpl-fit-1"))

    assert created.brand_id == "brand-1"
    assert created.is_active is True
    assert created.master_template_id == "tpl-fit-1"
    audit = await store.query("audit_logs", [QueryFilter.eq("entity_id", created.id)])
    assert [row["event_type"] for row in audit] == ["okr_objective.created"]
    assert json.loads(audit[0]["payload_json"])["payload"]["brand_id"] == "brand-1"


async def test_near_duplicate_in_same_brand_is_rejected(objective_service) -> None:
    await objective_service.create_objective("brand-1", _draft("Grow Followers"))

    with pytest.raises(DuplicateError) as exc_info:
        await objective_service.create_objective("brand-1", _draft("Grow Follower"))

    assert exc_info.value.status_code == 409
    assert exc_info.value.details["issues"][0]["code"] == "DUPLICATE_OKR"


async def test_duplicates_are_scoped_per_brand(objective_service) -> None:
    await objective_service.create_objective("brand-1", _draft("Grow Followers"))
    other = await objective_service.create_objective("brand-2", _draft("Grow Followers"))
    assert other.brand_id == "brand-2"


async def test_allow_duplicate_overrides_check(objective_service) -> None:
    await objective_service.create_objective("brand-1", _draft("Grow Followers"))
    again = await objective_service.create_objective("brand-1", _draft("Grow Followers"), allow_duplicate=True)
    assert again.title == "Grow Followers"
    assert len(await objective_service.existing_objectives("brand-1")) == 2


async def test_past_target_date_is_a_validation_error(objective_service) -> None:
    with pytest.raises(ObjectiveValidationError) as exc_info:
        await objective_service.create_objective("brand-1", _draft(target_date_id=2))

    assert not isinstance(exc_info.value, DuplicateError)
    assert exc_info.value.issues[0].code == "INVALID_TARGET_DATE"


async def test_bulk_create(objective_service) -> None:
    created, result = await objective_service.create_objectives_bulk(
        "brand-1",
        [_draft("Grow Followers", priority=1), _draft("Lift engagement")],
    )

    assert [objective.title for objective in created] == ["Grow Followers", "Lift engagement"]
    assert result.is_valid is True


async def test_bulk_create_rejects_oversized_batch(objective_service) -> None:
    with pytest.raises(BulkLimitExceededError) as exc_info:
        await objective_service.create_objectives_bulk("brand-1", [_draft(f"Objective {n}") for n in range(4)])

    assert exc_info.value.details == {"size": 4, "limit": 3}


async def test_bulk_create_is_all_or_nothing(objective_service) -> None:
    with pytest.raises(ObjectiveValidationError):
        await objective_service.create_objectives_bulk("brand-1", [_draft("Fine objective"), _draft("Late", target_date_id=2)])

    assert await objective_service.existing_objectives("brand-1") == []
