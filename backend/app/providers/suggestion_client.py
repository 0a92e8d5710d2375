from __future__ import annotations

import logging
import uuid
from typing import Any, Protocol

import httpx
from pydantic import ValidationError
from pydantic.alias_generators import to_snake

from app.providers.errors import SuggestionResponseFormatError, classify_suggestion_error
from app.schemas.suggestions import ServiceHealth, SuggestionContext, SuggestionMetadata, SuggestionResponse
from app.schemas.templates import AiCandidate

logger = logging.getLogger("okr.suggestions")

SUGGESTIONS_PATH = "/api/okr-suggestions"
HEALTH_PATH = "/api/okr-suggestions/health"


class GenerativeSuggestionService(Protocol):
    async def request(self, context: SuggestionContext) -> SuggestionResponse: ...

    async def health(self) -> ServiceHealth: ...


def _ai_candidate(raw: dict[str, Any]) -> AiCandidate:
    fields = {to_snake(key): value for key, value in raw.items()}
    fields.pop("origin", None)
    fields.pop("source", None)
    if not fields.get("id"):
        fields["id"] = f"ai-{uuid.uuid4().hex[:12]}"
    priority = fields.get("priority")
    if isinstance(priority, int | float):
        fields["priority"] = min(3, max(1, int(priority)))
    confidence = fields.get("confidence_score")
    if isinstance(confidence, int | float):
        fields["confidence_score"] = min(1.0, max(0.0, float(confidence)))
    if fields.get("suggested_timeframe") not in {"daily", "weekly", "monthly", "quarterly"}:
        fields["suggested_timeframe"] = "quarterly"
    return AiCandidate.model_validate(fields)


def parse_suggestion_body(body: Any) -> SuggestionResponse:
    if not isinstance(body, dict):
        raise SuggestionResponseFormatError("Suggestion response body is not a JSON object.")
    if not body.get("success"):
        raise SuggestionResponseFormatError(str(body.get("error") or "Failed to generate suggestions"), upstream_payload=body)
    data = body.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("suggestions"), list):
        raise SuggestionResponseFormatError("Suggestion response is missing data.suggestions.", upstream_payload=body)
    try:
        suggestions = [_ai_candidate(item) for item in data["suggestions"] if isinstance(item, dict)]
        metadata = SuggestionMetadata.model_validate(data["metadata"]) if isinstance(data.get("metadata"), dict) else None
    except ValidationError as exc:
        raise SuggestionResponseFormatError(f"Suggestion payload failed validation: {exc.error_count()} error(s)") from exc
    return SuggestionResponse(suggestions=suggestions, metadata=metadata)


class HttpSuggestionClient:
    """httpx client for the generative suggestion endpoint; failures surface as classified errors."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout_seconds, transport=self._transport)

    async def request(self, context: SuggestionContext) -> SuggestionResponse:
        try:
            async with self._client() as client:
                response = await client.post(SUGGESTIONS_PATH, json=context.to_wire())
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as exc:
            logger.warning("suggestion request failed url=%s error=%s", self.base_url + SUGGESTIONS_PATH, type(exc).__name__)
            raise classify_suggestion_error(exc) from exc
        except ValueError as exc:
            raise SuggestionResponseFormatError("Suggestion response was not valid JSON.") from exc
        result = parse_suggestion_body(body)
        logger.info("suggestions generated count=%s industry=%s", len(result.suggestions), context.industry)
        return result

    async def health(self) -> ServiceHealth:
        try:
            async with self._client() as client:
                response = await client.get(HEALTH_PATH)
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPError as exc:
            raise classify_suggestion_error(exc) from exc
        except ValueError as exc:
            raise SuggestionResponseFormatError("Health response was not valid JSON.") from exc
        status = body.get("status") if isinstance(body, dict) else None
        return ServiceHealth(status=str(status or "unhealthy"))
