from app.schemas.objectives import ExistingObjective
from app.services.objective_validation import ObjectiveValidator


def _draft(title: str, priority: int = 2, **overrides) -> dict:
    return {
        "title": title,
        "target_value": 10,
        "target_date_id": 1,
        "granularity": "weekly",
        "metric_type_id": "metric-1",
        "priority": priority,
        **overrides,
    }


async def test_bulk_ceiling_short_circuits() -> None:
    validator = ObjectiveValidator(max_bulk_size=3)

    result = await validator.validate_bulk([_draft(f"Objective {n}") for n in range(4)])

    assert result.is_valid is False
    assert result.can_proceed is False
    assert [issue.code for issue in result.errors] == ["BULK_SIZE_EXCEEDED"]
    assert result.errors[0].message == "Maximum 3 OKRs allowed per bulk operation"


async def test_default_ceiling_is_fifty() -> None:
    validator = ObjectiveValidator()

    over = await validator.validate_bulk([_draft(f"Objective {n}") for n in range(51)])
    at_limit = await validator.validate_bulk([_draft(f"Objective {n}") for n in range(50)])

    assert [issue.code for issue in over.errors] == ["BULK_SIZE_EXCEEDED"]
    assert over.errors[0].message == "Maximum 50 OKRs allowed per bulk operation"
    assert over.can_proceed is False
    assert "BULK_SIZE_EXCEEDED" not in {issue.code for issue in at_limit.errors}


async def test_per_item_errors_are_prefixed_and_non_blocking() -> None:
    result = await ObjectiveValidator().validate_bulk([_draft("Valid objective"), _draft("ab")])

    assert result.is_valid is False
    assert result.can_proceed is True
    assert [issue.field for issue in result.errors] == ["okr[1].title"]


async def test_duplicate_against_existing_blocks_bulk() -> None:
    validator = ObjectiveValidator([ExistingObjective(id="okr-1", title="Grow Followers")])

    result = await validator.validate_bulk([_draft("Grow Follower"), _draft("Reduce churn")])

    assert result.can_proceed is False
    assert [(issue.field, issue.code) for issue in result.errors] == [("okr[0].title", "DUPLICATE_OKR")]


async def test_in_batch_duplicate_titles_warn() -> None:
    result = await ObjectiveValidator().validate_bulk([_draft("Grow Reach"), _draft("  grow reach ")])

    assert result.is_valid is True
    assert result.warnings == ['Duplicate titles in batch: "grow reach"']


async def test_high_priority_warning_threshold() -> None:
    balanced = [_draft("A objective", 1), _draft("B objective", 1), _draft("C objective"), _draft("D objective")]
    crowded = [_draft("A objective", 1), _draft("B objective", 1), _draft("C objective", 1), _draft("D objective")]

    assert (await ObjectiveValidator().validate_bulk(balanced)).warnings == []
    assert (await ObjectiveValidator().validate_bulk(crowded)).warnings == [
        "High number of high-priority OKRs (3). Consider balancing priorities."
    ]


async def test_empty_batch_is_valid() -> None:
    result = await ObjectiveValidator().validate_bulk([])
    assert result.is_valid is True
    assert result.can_proceed is True
    assert result.warnings == []
