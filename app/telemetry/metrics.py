"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests processed",
    ("method", "route", "status"),
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ("method", "route"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

ERROR_COUNTER = Counter(
    "app_internal_errors_total",
    "Number of requests ending in internal server error responses",
    ("method", "route"),
)

ANALYSIS_TRIGGERS = Counter(
    "media_analysis_triggers_total",
    "Analysis trigger requests by outcome",
    ("media_type", "outcome"),
)

ANALYSIS_RESULTS = Counter(
    "media_analysis_results_total",
    "Finished analysis jobs by provider and terminal status",
    ("provider", "status"),
)

ANALYSIS_DURATION = Histogram(
    "media_analysis_duration_seconds",
    "Wall-clock time spent inside a provider adapter",
    ("provider",),
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)

ANALYSIS_QUEUE_DEPTH = Gauge(
    "media_analysis_queue_depth",
    "Analysis jobs waiting for a worker",
)


def observe_request(
    method: str,
    route: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record metrics for a completed HTTP request."""

    safe_route = route or "unknown"
    safe_method = method or "UNKNOWN"
    status_label = str(status_code)
    observed_duration = duration_seconds if duration_seconds >= 0 else 0

    REQUEST_COUNT.labels(
        method=safe_method,
        route=safe_route,
        status=status_label,
    ).inc()
    REQUEST_LATENCY.labels(
        method=safe_method,
        route=safe_route,
    ).observe(observed_duration)

    if status_code >= 500:
        ERROR_COUNTER.labels(
            method=safe_method,
            route=safe_route,
        ).inc()


def record_trigger(media_type: str | None, outcome: str) -> None:
    """Count an analysis trigger attempt by outcome, including scheduling failures."""

    ANALYSIS_TRIGGERS.labels(media_type=media_type or "unknown", outcome=outcome).inc()


def record_analysis_result(provider: str | None, status: str, duration_seconds: float) -> None:
    """Record the terminal outcome and duration of one analysis job."""

    safe_provider = provider or "unknown"
    ANALYSIS_RESULTS.labels(provider=safe_provider, status=status).inc()
    ANALYSIS_DURATION.labels(provider=safe_provider).observe(max(duration_seconds, 0))


def set_queue_depth(depth: int) -> None:
    ANALYSIS_QUEUE_DEPTH.set(depth)
