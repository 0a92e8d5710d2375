from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.schemas.templates import AiCandidate, TemplateOrigin


class SuggestionContext(BaseModel):
    """Brand context sent verbatim to the generative service (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    industry: str = ""
    brand_name: str = ""
    tenant_id: str = ""
    key_product: str | None = None
    product_category: str | None = None
    key_competition: tuple[str, ...] | None = None
    major_keywords: tuple[str, ...] | None = None
    objective: str | None = None
    historical_okrs: tuple[str, ...] | None = Field(default=None, alias="historicalOKRs")

    def missing_required_fields(self) -> list[str]:
        return [name for name in ("industry", "brand_name", "tenant_id") if not getattr(self, name).strip()]

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SuggestionMetadata(BaseModel):
    industry: str | None = None
    brand_context: str | None = Field(default=None, alias="brandContext")
    generated_at: str | None = Field(default=None, alias="generatedAt")
    confidence: float | None = None

    model_config = ConfigDict(populate_by_name=True)


class SuggestionResponse(BaseModel):
    suggestions: list[AiCandidate]
    metadata: SuggestionMetadata | None = None


class ServiceHealth(BaseModel):
    status: str

    @property
    def is_healthy(self) -> bool:
        return self.status == "healthy"


class SwitchSourceIn(BaseModel):
    source: TemplateOrigin
