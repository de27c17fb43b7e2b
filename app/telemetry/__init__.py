"""Telemetry helpers and metrics."""

from .metrics import (
    ANALYSIS_DURATION,
    ANALYSIS_QUEUE_DEPTH,
    ANALYSIS_RESULTS,
    ANALYSIS_TRIGGERS,
    ERROR_COUNTER,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    observe_request,
    record_analysis_result,
    record_trigger,
    set_queue_depth,
)

__all__ = [
    "ANALYSIS_DURATION",
    "ANALYSIS_QUEUE_DEPTH",
    "ANALYSIS_RESULTS",
    "ANALYSIS_TRIGGERS",
    "ERROR_COUNTER",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "observe_request",
    "record_analysis_result",
    "record_trigger",
    "set_queue_depth",
]
