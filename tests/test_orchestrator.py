"""Trigger and worker-side behaviour of the analysis state machine."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import update

from app.models import MediaRecord, MediaStatus, MediaType
from app.pipelines.analysis import (
    AnalysisConflictError,
    AnalysisOrchestrator,
    AnalysisSchedulingError,
    AnalysisWorkerPool,
    AudioAnalysisPayload,
    ImageAnalysisPayload,
    InvalidMediaStateError,
    MediaNotFoundError,
    ProviderConfigError,
    ProviderTimeoutError,
    QueueFullError,
)
from app.pipelines.analysis.types import ImageSizeMetadata
from conftest import RecordingDispatcher


class StubAdapter:
    def __init__(self, provider: str, model: str, *, result=None, error: Exception | None = None) -> None:
        self.provider = provider
        self.model = model
        self.result = result
        self.error = error
        self.calls = 0

    async def analyze(self, record):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def _image_payload() -> ImageAnalysisPayload:
    return ImageAnalysisPayload(
        model="vision-1",
        description="Relaxed posture, direct gaze.",
        sizeMetadata=ImageSizeMetadata(
            originalWidth=1024,
            originalHeight=768,
            width=768,
            height=576,
            resized=True,
            byteSize=1234,
        ),
    )


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def image_adapter() -> StubAdapter:
    return StubAdapter("bedrock_vision", "vision-1", result=_image_payload())


@pytest.fixture
def audio_adapter() -> StubAdapter:
    return StubAdapter(
        "hume",
        "prosody+burst",
        result=AudioAnalysisPayload(model="prosody+burst", jobId="job-1", emotions={"Calmness": 0.7}),
    )


@pytest.fixture
def orchestrator(repository, image_adapter, audio_adapter, dispatcher) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(
        repository,
        {MediaType.IMAGE: image_adapter, MediaType.AUDIO: audio_adapter},
        dispatcher,
    )


async def test_trigger_claims_and_dispatches(orchestrator, make_media, dispatcher):
    record = await make_media(MediaType.IMAGE)

    claimed = await orchestrator.trigger_analysis(record.id)

    assert claimed.status == MediaStatus.PROCESSING
    assert claimed.provider == "bedrock_vision"
    assert claimed.model == "vision-1"
    assert dispatcher.submitted == [record.id]


async def test_trigger_unknown_media_is_not_found(orchestrator, dispatcher):
    with pytest.raises(MediaNotFoundError) as excinfo:
        await orchestrator.trigger_analysis(uuid4())

    assert excinfo.value.status_code == 404
    assert dispatcher.submitted == []


async def test_trigger_processing_media_conflicts(orchestrator, make_media, repository):
    record = await make_media()
    await orchestrator.trigger_analysis(record.id)

    with pytest.raises(AnalysisConflictError) as excinfo:
        await orchestrator.trigger_analysis(record.id)

    assert excinfo.value.status_code == 409
    assert (await repository.get(record.id)).status == MediaStatus.PROCESSING


async def test_concurrent_triggers_start_one_job(orchestrator, make_media, dispatcher, image_adapter):
    record = await make_media()

    results = await asyncio.gather(
        orchestrator.trigger_analysis(record.id),
        orchestrator.trigger_analysis(record.id),
        return_exceptions=True,
    )

    accepted = [result for result in results if isinstance(result, MediaRecord)]
    rejected = [result for result in results if isinstance(result, Exception)]
    assert len(accepted) == 1
    assert len(rejected) == 1
    assert isinstance(rejected[0], AnalysisConflictError)
    assert dispatcher.submitted == [record.id]


async def test_trigger_terminal_media_is_invalid_state(orchestrator, make_media, repository):
    record = await make_media()
    await orchestrator.trigger_analysis(record.id)
    await orchestrator.run_analysis(record.id)

    with pytest.raises(InvalidMediaStateError) as excinfo:
        await orchestrator.trigger_analysis(record.id)

    assert excinfo.value.status_code == 400
    stored = await repository.get(record.id)
    assert stored.status == MediaStatus.SUCCEEDED
    assert stored.analysis_payload["description"] == "Relaxed posture, direct gaze."


async def test_run_analysis_persists_tagged_payload(orchestrator, make_media, repository, audio_adapter):
    record = await make_media(MediaType.AUDIO)
    await orchestrator.trigger_analysis(record.id)

    await orchestrator.run_analysis(record.id)

    stored = await repository.get(record.id)
    assert stored.status == MediaStatus.SUCCEEDED
    assert stored.provider == "hume"
    assert stored.analysis_payload["provider"] == "hume"
    assert stored.analysis_payload["emotions"] == {"Calmness": 0.7}
    assert stored.error is None
    assert audio_adapter.calls == 1


async def test_provider_error_marks_failed_with_detail(orchestrator, make_media, repository, image_adapter):
    image_adapter.error = ProviderTimeoutError("vision request timed out after 60 seconds", detail={"attempts": 1})
    record = await make_media()
    await orchestrator.trigger_analysis(record.id)

    await orchestrator.run_analysis(record.id)

    stored = await repository.get(record.id)
    assert stored.status == MediaStatus.FAILED
    assert "timed out after 60 seconds" in stored.error
    assert stored.error_detail == {"kind": "ProviderTimeout", "attempts": 1}
    assert stored.analysis_payload is None


async def test_unexpected_error_marks_failed(orchestrator, make_media, repository, image_adapter):
    image_adapter.error = ValueError("kaboom")
    record = await make_media()
    await orchestrator.trigger_analysis(record.id)

    await orchestrator.run_analysis(record.id)

    stored = await repository.get(record.id)
    assert stored.status == MediaStatus.FAILED
    assert stored.error == "Unexpected analysis error: kaboom"
    assert stored.error_detail["kind"] == "InternalError"


async def test_missing_credentials_fail_the_record_not_the_trigger(orchestrator, make_media, repository, image_adapter):
    image_adapter.error = ProviderConfigError("vision provider credentials are not configured")
    record = await make_media()

    await orchestrator.trigger_analysis(record.id)
    await orchestrator.run_analysis(record.id)

    stored = await repository.get(record.id)
    assert stored.status == MediaStatus.FAILED
    assert "not configured" in stored.error


async def test_run_analysis_skips_records_not_processing(orchestrator, make_media, repository, image_adapter):
    record = await make_media()

    await orchestrator.run_analysis(record.id)

    assert image_adapter.calls == 0
    assert (await repository.get(record.id)).status == MediaStatus.PENDING


def _trigger_count(media_type: str, outcome: str) -> float:
    value = REGISTRY.get_sample_value(
        "media_analysis_triggers_total", {"media_type": media_type, "outcome": outcome}
    )
    return value or 0.0


async def test_failed_dispatch_marks_record_failed(repository, image_adapter, make_media):
    class BrokenDispatcher:
        async def submit(self, media_id):
            raise RuntimeError("Worker pool is not running")

    orchestrator = AnalysisOrchestrator(repository, {MediaType.IMAGE: image_adapter}, BrokenDispatcher())
    record = await make_media()
    before = _trigger_count("image", "scheduling_failed")

    with pytest.raises(AnalysisSchedulingError) as excinfo:
        await orchestrator.trigger_analysis(record.id)

    assert excinfo.value.status_code == 503
    assert "Worker pool is not running" in str(excinfo.value)
    stored = await repository.get(record.id)
    assert stored.status == MediaStatus.FAILED
    assert stored.error_detail == {"kind": "SchedulingError"}
    assert _trigger_count("image", "scheduling_failed") == before + 1


async def test_trigger_fails_fast_when_queue_is_full(repository, image_adapter, make_media):
    release = asyncio.Event()
    started = []

    async def blocked_handler(media_id):
        started.append(media_id)
        await release.wait()

    pool = AnalysisWorkerPool(worker_count=1, queue_size=1)
    orchestrator = AnalysisOrchestrator(repository, {MediaType.IMAGE: image_adapter}, pool)
    pool.start(blocked_handler)
    first, second, third = [await make_media() for _ in range(3)]
    try:
        await orchestrator.trigger_analysis(first.id)
        for _ in range(100):
            if started:
                break
            await asyncio.sleep(0.01)
        assert started == [first.id]

        await orchestrator.trigger_analysis(second.id)
        with pytest.raises(AnalysisSchedulingError):
            await asyncio.wait_for(orchestrator.trigger_analysis(third.id), 1)
    finally:
        release.set()
        await pool.stop()

    stored = await repository.get(third.id)
    assert stored.status == MediaStatus.FAILED
    assert stored.error_detail == {"kind": "SchedulingError"}
    assert "queue is full" in stored.error
    assert (await repository.get(second.id)).status == MediaStatus.PROCESSING


async def test_cancelled_trigger_releases_claim(repository, image_adapter, make_media):
    class StalledDispatcher:
        async def submit(self, media_id):
            await asyncio.Event().wait()

    orchestrator = AnalysisOrchestrator(repository, {MediaType.IMAGE: image_adapter}, StalledDispatcher())
    record = await make_media()

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(orchestrator.trigger_analysis(record.id), 0.1)

    stored = await repository.get(record.id)
    assert stored.status == MediaStatus.PENDING
    assert stored.provider is None
    assert stored.analysis_started_at is None


async def test_reset_for_retry_then_trigger_again(orchestrator, make_media, repository, image_adapter, dispatcher):
    image_adapter.error = ProviderConfigError("vision provider credentials are not configured")
    record = await make_media()
    await orchestrator.trigger_analysis(record.id)
    await orchestrator.run_analysis(record.id)

    with pytest.raises(InvalidMediaStateError):
        await orchestrator.trigger_analysis(record.id)

    reset = await orchestrator.reset_for_retry(record.id)
    assert reset.status == MediaStatus.PENDING

    image_adapter.error = None
    await orchestrator.trigger_analysis(record.id)
    await orchestrator.run_analysis(record.id)
    assert (await repository.get(record.id)).status == MediaStatus.SUCCEEDED
    assert dispatcher.submitted == [record.id, record.id]


async def test_reset_for_retry_rejections(orchestrator, make_media):
    with pytest.raises(MediaNotFoundError):
        await orchestrator.reset_for_retry(uuid4())

    pending = await make_media()
    with pytest.raises(InvalidMediaStateError):
        await orchestrator.reset_for_retry(pending.id)

    await orchestrator.trigger_analysis(pending.id)
    with pytest.raises(AnalysisConflictError):
        await orchestrator.reset_for_retry(pending.id)


async def test_recover_orphans_redispatches_stale_processing(orchestrator, make_media, session_provider, dispatcher):
    record = await make_media()
    await orchestrator.trigger_analysis(record.id)
    async with session_provider() as session:
        await session.execute(
            update(MediaRecord)
            .where(MediaRecord.id == record.id)
            .values(analysis_started_at=datetime.utcnow() - timedelta(hours=2))
        )
        await session.commit()

    recovered = await orchestrator.recover_orphans(stale_after_seconds=900)

    assert recovered == 1
    assert dispatcher.submitted == [record.id, record.id]


async def test_recover_orphans_stops_at_full_queue(repository, image_adapter, make_media, session_provider):
    class OneSlotDispatcher:
        def __init__(self):
            self.submitted = []

        async def submit(self, media_id):
            if self.submitted:
                raise QueueFullError("Analysis queue is full (1 jobs waiting)")
            self.submitted.append(media_id)

    dispatcher = OneSlotDispatcher()
    orchestrator = AnalysisOrchestrator(repository, {MediaType.IMAGE: image_adapter}, dispatcher)
    records = [await make_media() for _ in range(2)]
    for record in records:
        await repository.claim_for_analysis(record.id, provider="bedrock_vision", model="vision-1")
    async with session_provider() as session:
        await session.execute(
            update(MediaRecord).values(analysis_started_at=datetime.utcnow() - timedelta(hours=2))
        )
        await session.commit()

    recovered = await orchestrator.recover_orphans(stale_after_seconds=900)

    assert recovered == 1
    assert len(dispatcher.submitted) == 1
    for record in records:
        assert (await repository.get(record.id)).status == MediaStatus.PROCESSING
