"""Submit/poll/fetch voice analysis through the Hume batch API.

Worst-case blocking time for one record is roughly
``max_poll_attempts * poll_interval_seconds`` (five minutes with the default
configuration) before a deterministic timeout failure is produced.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from pathlib import PurePosixPath
from typing import Any, Iterable, Mapping

from app.config.settings import HumeConfig
from app.models.media import MediaRecord, MediaType
from app.pipelines.analysis.errors import (
    MalformedResponseError,
    ProviderConfigError,
    ProviderTimeoutError,
    ProviderTransportError,
)
from app.pipelines.analysis.types import AUDIO_PROVIDER, AudioAnalysisPayload, EmotionScore
from app.services.hume_client import HumeApiError, HumeBatchClient, HumeResponseError
from app.services.storage import MediaStorage, StorageError

logger = logging.getLogger(__name__)

TOP_EMOTION_COUNT = 3


def _iter_model_predictions(raw_predictions: Iterable[Any], model_name: str) -> Iterable[Mapping[str, Any]]:
    """Yield every segment prediction produced by ``model_name``."""

    for source in raw_predictions:
        if not isinstance(source, Mapping):
            continue
        results = source.get("results") or {}
        for file_prediction in results.get("predictions") or []:
            model_block = (file_prediction.get("models") or {}).get(model_name) or {}
            for group in model_block.get("grouped_predictions") or []:
                for segment in group.get("predictions") or []:
                    if isinstance(segment, Mapping):
                        yield segment


def average_emotions(segments: Iterable[Mapping[str, Any]]) -> tuple[dict[str, float], int]:
    """Return the mean score per emotion name and the number of segments seen."""

    totals: dict[str, float] = defaultdict(float)
    counts: dict[str, int] = defaultdict(int)
    segment_count = 0
    for segment in segments:
        segment_count += 1
        for emotion in segment.get("emotions") or []:
            name = emotion.get("name")
            score = emotion.get("score")
            if not name or not isinstance(score, (int, float)):
                continue
            totals[name] += float(score)
            counts[name] += 1
    averages = {name: round(totals[name] / counts[name], 6) for name in totals}
    return averages, segment_count


def summarize_predictions(raw_predictions: list[Any]) -> dict[str, Any]:
    """Extract emotion and vocal burst scores from a predictions response."""

    source_errors = [
        error
        for source in raw_predictions
        if isinstance(source, Mapping)
        for error in ((source.get("results") or {}).get("errors") or [])
    ]

    emotions, segment_count = average_emotions(_iter_model_predictions(raw_predictions, "prosody"))
    vocal_bursts, _ = average_emotions(_iter_model_predictions(raw_predictions, "burst"))

    if not emotions and not vocal_bursts:
        message = "Hume returned no voice predictions"
        if source_errors:
            message = f"{message}: {source_errors[0]}"
        raise MalformedResponseError(message, detail={"raw_response": raw_predictions})

    top = sorted(emotions.items(), key=lambda item: item[1], reverse=True)[:TOP_EMOTION_COUNT]
    return {
        "emotions": emotions,
        "vocalBursts": vocal_bursts,
        "topEmotions": [EmotionScore(name=name, score=score) for name, score in top],
        "segmentCount": segment_count,
    }


class AudioAnalysisAdapter:
    """Run one Hume batch job per audio record."""

    provider = AUDIO_PROVIDER
    media_type = MediaType.AUDIO

    def __init__(
        self,
        config: HumeConfig,
        storage: MediaStorage,
        client: HumeBatchClient,
        *,
        poll_interval_seconds: float | None = None,
        max_poll_attempts: int | None = None,
    ) -> None:
        self._config = config
        self._storage = storage
        self._client = client
        self.poll_interval_seconds = (
            config.poll_interval_seconds if poll_interval_seconds is None else poll_interval_seconds
        )
        self.max_poll_attempts = (
            config.max_poll_attempts if max_poll_attempts is None else max_poll_attempts
        )
        self.model = "+".join(config.models)

    @property
    def timeout_seconds(self) -> float:
        return self.max_poll_attempts * self.poll_interval_seconds

    async def analyze(self, record: MediaRecord) -> AudioAnalysisPayload:
        if self._config.api_key is None or not self._config.api_key.get_secret_value():
            raise ProviderConfigError("Hume API key is not configured")

        try:
            audio_bytes = await self._storage.download_bytes(record.storage_path)
        except StorageError as exc:
            raise ProviderTransportError(str(exc)) from exc

        filename = PurePosixPath(record.storage_path).name or f"{record.id}.audio"
        try:
            job_id = await self._client.submit_job(filename, audio_bytes, record.content_type)
            await self._wait_for_completion(record, job_id)
            raw_predictions = await self._client.get_predictions(job_id)
        except HumeResponseError as exc:
            raise MalformedResponseError(
                str(exc), detail={"status_code": exc.status_code, "body": exc.body}
            ) from exc
        except HumeApiError as exc:
            raise ProviderTransportError(
                str(exc), detail={"status_code": exc.status_code, "body": exc.body}
            ) from exc

        summary = summarize_predictions(raw_predictions)
        return AudioAnalysisPayload(
            model=self.model,
            jobId=job_id,
            rawResponse=raw_predictions,
            **summary,
        )

    async def _wait_for_completion(self, record: MediaRecord, job_id: str) -> None:
        """Poll until the job is terminal or the attempt budget is spent."""

        for attempt in range(1, self.max_poll_attempts + 1):
            await asyncio.sleep(self.poll_interval_seconds)
            state = await self._client.get_job_state(job_id)
            logger.debug(
                "Hume job %s media_id=%s attempt=%d/%d status=%s",
                job_id,
                record.id,
                attempt,
                self.max_poll_attempts,
                state.status,
            )
            if state.is_completed:
                return
            if state.is_failed:
                raise ProviderTransportError(
                    f"Hume job {job_id} failed: {state.message or 'no message'}",
                    detail={"job_id": job_id, "status": state.status},
                )

        raise ProviderTimeoutError(
            f"Hume job timed out after {self.timeout_seconds:g} seconds (job_id={job_id})",
            detail={"job_id": job_id, "attempts": self.max_poll_attempts},
        )


__all__ = ["AudioAnalysisAdapter", "average_emotions", "summarize_predictions"]
