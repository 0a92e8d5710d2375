from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field


class ActionStage(StrEnum):
    NEW = "new"
    VIEWED = "viewed"
    SAVED = "saved"
    SELECTED_FOR_ACTION = "selected_for_action"
    IN_PROGRESS = "in_progress"
    ACTIONED = "actioned"
    DISMISSED = "dismissed"


class RecommendedActionOut(BaseModel):
    id: str
    insight_id: str
    action_text: str
    priority: Literal["high", "medium", "low"]
    stage: ActionStage
    confidence_score: float | None = Field(default=None, ge=0.0, le=1.0)
    impact_score: float | None = None
    created_at: datetime
    viewed_at: datetime | None = None
    viewed_by: str | None = None
    saved_at: datetime | None = None
    saved_by: str | None = None
    actioned_at: datetime | None = None
    actioned_by: str | None = None
    okr_objective_id: str | None = None
    campaign_id: str | None = None

    model_config = {"from_attributes": True}


class StageTransitionIn(BaseModel):
    target_stage: ActionStage
    actor_id: str = Field(min_length=1)


class LinkObjectiveIn(BaseModel):
    okr_objective_id: str = Field(min_length=1)


class AssignCampaignIn(BaseModel):
    campaign_id: str = Field(min_length=1)
