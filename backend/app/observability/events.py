from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger('okr.observability')


def _emit(event_name: str, payload: dict[str, Any]) -> None:
    message = {
        'event': event_name,
        **payload,
    }
    logger.info(json.dumps(message, sort_keys=True, separators=(',', ':'), default=str))


def emit_template_resolution(
    *,
    industry_slug: str | None,
    query_method: str,
    fallback_used: bool,
    result_count: int,
    execution_time_ms: float,
    cached: bool = False,
) -> None:
    _emit(
        'template_resolution',
        {
            'industry_slug': industry_slug,
            'query_method': query_method,
            'fallback_used': fallback_used,
            'result_count': result_count,
            'execution_time_ms': round(execution_time_ms, 2),
            'cached': cached,
        },
    )


def emit_suggestion_fallback(*, session_id: str, industry: str, error_code: str, catalog_count: int) -> None:
    _emit(
        'suggestion_fallback',
        {
            'session_id': session_id,
            'industry': industry,
            'error_code': error_code,
            'catalog_count': catalog_count,
        },
    )


def emit_stage_transition(*, action_id: str, prior_stage: str, new_stage: str, actor_id: str) -> None:
    _emit(
        'stage_transition',
        {
            'action_id': action_id,
            'prior_stage': prior_stage,
            'new_stage': new_stage,
            'actor_id': actor_id,
        },
    )


def emit_performance_alert(*, alert_type: str, operation: str, message: str, details: dict[str, Any]) -> None:
    _emit(
        'performance_alert',
        {
            'alert_type': alert_type,
            'operation': operation,
            'message': message,
            'details': details,
        },
    )
