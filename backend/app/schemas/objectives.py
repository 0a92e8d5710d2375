from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


Granularity = Literal["daily", "weekly", "monthly"]


class ObjectiveDraft(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: str | None = None
    target_value: float = Field(gt=0)
    target_date_id: int = Field(gt=0)
    granularity: Granularity
    metric_type_id: str = Field(min_length=1)
    platform_id: str | None = None
    priority: int = Field(ge=1, le=3)
    master_template_id: str | None = None


class ValidationIssue(BaseModel):
    field: str
    message: str
    code: str
    template_id: str | None = None


class SimilarObjective(BaseModel):
    id: str
    title: str
    similarity: float


class DuplicateCheck(BaseModel):
    is_duplicate: bool
    similar_objective: SimilarObjective | None = None


class ExistingObjective(BaseModel):
    id: str
    title: str
    is_active: bool = True


class BulkValidationResult(BaseModel):
    is_valid: bool
    errors: list[ValidationIssue]
    warnings: list[str]
    can_proceed: bool


class BulkValidateIn(BaseModel):
    drafts: list[dict]
    brand_id: str | None = None
    allow_duplicates: bool = False


class ValidateObjectiveIn(BaseModel):
    draft: dict
    brand_id: str | None = None
    allow_duplicates: bool = False


class CreateObjectiveIn(BaseModel):
    brand_id: str
    draft: ObjectiveDraft
    allow_duplicate: bool = False


class ObjectiveOut(BaseModel):
    id: str
    brand_id: str
    title: str
    description: str | None = None
    target_value: float
    target_date_id: int
    granularity: str
    metric_type_id: str
    platform_id: str | None = None
    priority: int
    master_template_id: str | None = None
    is_active: bool

    model_config = {"from_attributes": True}
