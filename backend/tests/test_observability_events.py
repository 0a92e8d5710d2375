import json
import logging

from app.core.metrics import render_metrics, stage_transitions_total
from app.observability.events import emit_stage_transition, emit_suggestion_fallback


def test_events_are_compact_sorted_json(caplog) -> None:
    caplog.set_level(logging.INFO, logger="okr.observability")

    emit_stage_transition(action_id="action-1", prior_stage="new", new_stage="viewed", actor_id="user-1")
    emit_suggestion_fallback(session_id="session-1", industry="fitness", error_code="suggestion_timeout", catalog_count=4)

    messages = [record.getMessage() for record in caplog.records if record.name == "okr.observability"]
    assert len(messages) == 2
    first = json.loads(messages[0])
    assert first["event"] == "stage_transition"
    assert first["new_stage"] == "viewed"
    assert messages[0] == json.dumps(first, sort_keys=True, separators=(",", ":"))
    assert json.loads(messages[1])["catalog_count"] == 4


def test_metrics_render_prometheus_text() -> None:
    stage_transitions_total.labels(from_stage="new", to_stage="viewed").inc()

    payload, content_type = render_metrics()

    assert content_type.startswith("text/plain")
    assert b"okr_action_stage_transitions_total" in payload
