"""Analysis state machine: ``pending -> processing -> succeeded | failed``.

``trigger_analysis`` runs inside the HTTP request and only performs the
guarded ``pending -> processing`` transition before handing the media id to a
dispatcher. ``run_analysis`` runs on a worker, calls the provider adapter and
writes the terminal state back. Adapter failures never propagate to the
trigger caller; they are only visible on the record afterwards.
"""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from datetime import datetime, timedelta
from typing import Any, Mapping, Protocol
from uuid import UUID

from app.models.media import MediaRecord, MediaStatus, MediaType
from app.pipelines.analysis.errors import (
    AnalysisConflictError,
    AnalysisRejectedError,
    AnalysisSchedulingError,
    InvalidMediaStateError,
    MediaNotFoundError,
    ProviderConfigError,
    ProviderError,
)
from app.pipelines.analysis.types import AnalysisAdapter, dump_payload
from app.pipelines.analysis.worker import QueueFullError
from app.services.media_repository import MediaRepository
from app.telemetry import record_analysis_result, record_trigger

logger = logging.getLogger(__name__)


class AnalysisDispatcher(Protocol):
    async def submit(self, media_id: UUID) -> None:
        ...


def _rejection_for_trigger(media_id: UUID, record: MediaRecord | None) -> AnalysisRejectedError:
    if record is None:
        return MediaNotFoundError(media_id)
    if record.status == MediaStatus.SUCCEEDED:
        return InvalidMediaStateError(media_id, "Media analysis already completed")
    if record.status == MediaStatus.FAILED:
        return InvalidMediaStateError(media_id, "Media analysis already failed")
    # processing, or pending again after a concurrent reset
    return AnalysisConflictError(media_id)


class AnalysisOrchestrator:
    """Owns the media analysis lifecycle and dispatches to provider adapters."""

    def __init__(
        self,
        repository: MediaRepository,
        adapters: Mapping[MediaType, AnalysisAdapter],
        dispatcher: AnalysisDispatcher,
    ) -> None:
        self._repository = repository
        self._adapters = dict(adapters)
        self._dispatcher = dispatcher

    def adapter_for(self, media_type: MediaType) -> AnalysisAdapter:
        try:
            return self._adapters[MediaType(media_type)]
        except KeyError:
            raise ProviderConfigError(f"No analysis adapter registered for {media_type}") from None

    async def trigger_analysis(self, media_id: UUID) -> MediaRecord:
        """Claim a pending record and schedule its analysis.

        Raises ``MediaNotFoundError``, ``AnalysisConflictError`` or
        ``InvalidMediaStateError`` without touching the record when the
        preconditions do not hold.
        """

        record = await self._repository.get(media_id)
        if record is None or record.status != MediaStatus.PENDING:
            rejection = _rejection_for_trigger(media_id, record)
            record_trigger(record.media_type.value if record else None, rejection.outcome)
            raise rejection

        adapter = self.adapter_for(record.media_type)
        claimed = await self._repository.claim_for_analysis(
            media_id,
            provider=adapter.provider,
            model=adapter.model,
        )
        if claimed is None:
            # Lost the compare-and-swap to a concurrent caller.
            current = await self._repository.get(media_id)
            rejection = _rejection_for_trigger(media_id, current)
            record_trigger(record.media_type.value, rejection.outcome)
            raise rejection

        try:
            await self._dispatcher.submit(media_id)
        except asyncio.CancelledError:
            # The caller went away before the job was queued; hand the record back.
            await asyncio.shield(self._repository.release_claim(media_id))
            raise
        except Exception as exc:
            logger.exception("Could not schedule analysis for media_id=%s", media_id)
            failure = AnalysisSchedulingError(media_id, f"Analysis could not be scheduled: {exc}")
            await self._repository.mark_failed(
                media_id,
                str(failure),
                detail={"kind": failure.kind},
            )
            record_trigger(record.media_type.value, failure.outcome)
            raise failure from exc

        record_trigger(record.media_type.value, "accepted")
        logger.info(
            "Analysis accepted media_id=%s type=%s provider=%s",
            media_id,
            record.media_type.value,
            adapter.provider,
        )
        return claimed

    async def run_analysis(self, media_id: UUID) -> None:
        """Execute the adapter for a claimed record and persist the outcome."""

        record = await self._repository.get(media_id)
        if record is None or record.status != MediaStatus.PROCESSING:
            logger.warning(
                "Skipping analysis for media_id=%s (status=%s)",
                media_id,
                record.status.value if record else "missing",
            )
            return

        started = time.perf_counter()
        provider = record.provider
        detail: dict[str, Any] | None = None
        try:
            adapter = self.adapter_for(record.media_type)
            provider = adapter.provider
            payload = await adapter.analyze(record)
        except ProviderError as exc:
            message = str(exc)
            detail = {"kind": exc.kind, **(exc.detail or {})}
            logger.warning("Analysis failed media_id=%s kind=%s: %s", media_id, exc.kind, message)
        except Exception as exc:
            message = f"Unexpected analysis error: {exc}"
            detail = {"kind": "InternalError", "traceback": traceback.format_exc()}
            logger.exception("Unexpected analysis error media_id=%s", media_id)
        else:
            elapsed = time.perf_counter() - started
            await self._repository.mark_succeeded(media_id, dump_payload(payload))
            record_analysis_result(provider, MediaStatus.SUCCEEDED.value, elapsed)
            logger.info("Analysis succeeded media_id=%s provider=%s in %.2fs", media_id, provider, elapsed)
            return

        elapsed = time.perf_counter() - started
        await self._repository.mark_failed(media_id, message, detail=detail)
        record_analysis_result(provider, MediaStatus.FAILED.value, elapsed)

    async def reset_for_retry(self, media_id: UUID) -> MediaRecord:
        """Explicitly move a ``failed`` record back to ``pending``.

        Separate from ``trigger_analysis``, which keeps rejecting failed
        records; callers decide whether to offer retries at all.
        """

        reset = await self._repository.reset_for_retry(media_id)
        if reset is not None:
            logger.info("Media media_id=%s reset for retry", media_id)
            return reset

        current = await self._repository.get(media_id)
        if current is None:
            raise MediaNotFoundError(media_id)
        if current.status == MediaStatus.PROCESSING:
            raise AnalysisConflictError(media_id)
        raise InvalidMediaStateError(
            media_id, f"Media is not in failed status: {current.status.value}"
        )

    async def recover_orphans(self, stale_after_seconds: float) -> int:
        """Re-dispatch records left ``processing`` by a crashed or stopped worker."""

        cutoff = datetime.utcnow() - timedelta(seconds=stale_after_seconds)
        media_ids = await self._repository.requeue_stale(cutoff)
        requeued = 0
        for media_id in media_ids:
            try:
                await self._dispatcher.submit(media_id)
            except QueueFullError:
                # Left processing; a later sweep picks these up once they go stale again.
                logger.warning(
                    "Analysis queue full; deferred %d orphaned analyses",
                    len(media_ids) - requeued,
                )
                break
            requeued += 1
        if requeued:
            logger.warning("Re-queued %d orphaned analyses", requeued)
        return requeued


async def run_recovery_loop(
    orchestrator: AnalysisOrchestrator,
    *,
    stale_after_seconds: float,
    interval_seconds: float,
) -> None:
    """Sweep for orphaned ``processing`` records now, then every ``interval_seconds``.

    A failed sweep is logged and retried on the next tick; only cancellation
    ends the loop.
    """

    while True:
        try:
            await orchestrator.recover_orphans(stale_after_seconds)
        except Exception:
            logger.exception("Orphaned analysis sweep failed")
        await asyncio.sleep(interval_seconds)


__all__ = ["AnalysisDispatcher", "AnalysisOrchestrator", "run_recovery_loop"]
