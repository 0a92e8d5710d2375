from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests.",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds.",
    ["method", "path"],
)

template_resolutions_total = Counter(
    "okr_template_resolutions_total",
    "Template resolutions by the tier that produced the result.",
    ["query_method", "status"],
)

operation_duration_seconds = Histogram(
    "okr_operation_duration_seconds",
    "Duration of instrumented core operations in seconds.",
    ["operation"],
)

suggestion_requests_total = Counter(
    "okr_suggestion_requests_total",
    "Generative suggestion requests by outcome.",
    ["outcome"],
)

suggestion_retries_total = Counter(
    "okr_suggestion_retries_total",
    "Retries issued against the generative suggestion service.",
)

stage_transitions_total = Counter(
    "okr_action_stage_transitions_total",
    "Recommended action stage transitions.",
    ["from_stage", "to_stage"],
)

validation_issues_total = Counter(
    "okr_validation_issues_total",
    "Objective validation issues by code.",
    ["code"],
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
