from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class TemplateOrigin(StrEnum):
    AI = "ai"
    CATALOG = "catalog"


class QueryMethod(StrEnum):
    EXACT_MATCH = "exact_match"
    CONTAINS_MATCH = "contains_match"
    ALL_TEMPLATES = "all_templates"


Timeframe = Literal["daily", "weekly", "monthly", "quarterly"]


class _CandidateBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    category: str
    priority: int = Field(ge=1, le=3)
    suggested_target_value: float = 0.0
    suggested_timeframe: Timeframe = "quarterly"
    applicable_platforms: list[str] = Field(default_factory=list)
    metric_type_id: str = ""
    confidence_score: float = Field(default=0.85, ge=0.0, le=1.0)
    reasoning: str | None = None


class AiCandidate(_CandidateBase):
    origin: Literal["ai"] = "ai"


class CatalogCandidate(_CandidateBase):
    origin: Literal["catalog"] = "catalog"
    okr_master_id: str
    industry: str | None = None


TemplateCandidate = Annotated[AiCandidate | CatalogCandidate, Field(discriminator="origin")]


class TemplateResolution(BaseModel):
    industry_slug: str | None
    candidates: list[CatalogCandidate]
    query_method: QueryMethod
    fallback_used: bool
    execution_time_ms: float = 0.0

    @property
    def result_count(self) -> int:
        return len(self.candidates)

    @property
    def status(self) -> Literal["ok", "no_results"]:
        return "ok" if self.candidates else "no_results"

    def to_payload(self) -> dict:
        return {
            "industry_slug": self.industry_slug,
            "query_method": self.query_method.value,
            "fallback_used": self.fallback_used,
            "result_count": self.result_count,
            "status": self.status,
            "execution_time_ms": round(self.execution_time_ms, 2),
            "candidates": [candidate.model_dump(mode="json") for candidate in self.candidates],
        }
