"""Exception hierarchy shared by the analysis orchestrator and provider adapters.

Three families exist:

* ``AnalysisRejectedError`` subclasses are raised synchronously by
  ``AnalysisOrchestrator.trigger_analysis`` before anything is persisted and
  map onto HTTP status codes in the media controller.
* ``AnalysisSchedulingError`` is raised by the trigger after a successful
  claim when no worker slot is free; the record is already marked failed.
* ``ProviderError`` subclasses are raised by adapters inside a background job.
  The orchestrator catches them and records the message on the media row;
  they never reach the HTTP caller.
"""

from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID


class AnalysisError(RuntimeError):
    """Base class for every analysis pipeline failure."""

    kind: str = "AnalysisError"


class AnalysisRejectedError(AnalysisError):
    """A trigger request violated a precondition; the record is untouched."""

    status_code: int = 400
    outcome: str = "rejected"

    def __init__(self, media_id: UUID, message: str) -> None:
        super().__init__(message)
        self.media_id = media_id


class MediaNotFoundError(AnalysisRejectedError):
    kind = "NotFound"
    outcome = "not_found"
    status_code = 404

    def __init__(self, media_id: UUID) -> None:
        super().__init__(media_id, "Media not found")


class AnalysisConflictError(AnalysisRejectedError):
    kind = "Conflict"
    outcome = "conflict"
    status_code = 409

    def __init__(self, media_id: UUID, message: str = "Analysis already in progress") -> None:
        super().__init__(media_id, message)


class InvalidMediaStateError(AnalysisRejectedError):
    kind = "InvalidState"
    outcome = "invalid_state"
    status_code = 400


class AnalysisSchedulingError(AnalysisError):
    """A claimed record could not be handed to a worker; it is marked failed."""

    kind = "SchedulingError"
    outcome = "scheduling_failed"
    status_code = 503

    def __init__(self, media_id: UUID, message: str) -> None:
        super().__init__(message)
        self.media_id = media_id


class ProviderError(AnalysisError):
    """Failure talking to (or configuring) an external analysis provider."""

    kind = "ProviderError"

    def __init__(self, message: str, *, detail: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.detail = dict(detail) if detail else None


class ProviderConfigError(ProviderError):
    kind = "ProviderConfigError"


class ProviderTransportError(ProviderError):
    kind = "ProviderTransportError"


class ProviderTimeoutError(ProviderError):
    kind = "ProviderTimeout"


class MalformedResponseError(ProviderError):
    kind = "MalformedResponse"


__all__ = [
    "AnalysisError",
    "AnalysisRejectedError",
    "MediaNotFoundError",
    "AnalysisConflictError",
    "InvalidMediaStateError",
    "AnalysisSchedulingError",
    "ProviderError",
    "ProviderConfigError",
    "ProviderTransportError",
    "ProviderTimeoutError",
    "MalformedResponseError",
]
