"""HTTP surface for subjects, uploads and analysis triggers."""

from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

from app.config.settings import HumeConfig, VisionConfig
from app.controllers.dependencies import get_analysis_runtime, get_current_identity
from app.database import get_session
from app.main import app
from app.models import MediaType
from app.pipelines.analysis import (
    AnalysisOrchestrator,
    AnalysisWorkerPool,
    AudioAnalysisAdapter,
    ImageAnalysisAdapter,
    QueueFullError,
)
from app.services.hume_client import HumeBatchClient
from app.utils import Identity, create_access_token
from conftest import FakeVisionClient, RecordingDispatcher


def _no_network(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected Hume call to {request.url}")


def _adapters(storage):
    hume_config = HumeConfig(api_key=None)
    hume = HumeBatchClient(
        hume_config,
        http_client=httpx.AsyncClient(base_url=hume_config.base_url, transport=httpx.MockTransport(_no_network)),
    )
    return {
        MediaType.IMAGE: ImageAnalysisAdapter(VisionConfig(), storage, FakeVisionClient()),
        MediaType.AUDIO: AudioAnalysisAdapter(hume_config, storage, hume),
    }


@pytest_asyncio.fixture
async def pool():
    workers = AnalysisWorkerPool(worker_count=1, queue_size=10)
    yield workers
    await workers.stop()


@pytest.fixture
def override_dependencies(session_provider, repository, storage):
    """Point the app at the test database, fake providers and a fixed identity."""

    async def fake_get_session():
        async with session_provider() as session:
            yield session

    async def fake_get_current_identity():
        return Identity(email="analyst@example.com", userId="user-1")

    app.dependency_overrides[get_session] = fake_get_session
    app.dependency_overrides[get_current_identity] = fake_get_current_identity

    def install(dispatcher):
        orchestrator = AnalysisOrchestrator(repository, _adapters(storage), dispatcher)
        runtime = SimpleNamespace(orchestrator=orchestrator, repository=repository, storage=storage)
        app.dependency_overrides[get_analysis_runtime] = lambda: runtime
        return orchestrator

    yield install

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


async def test_requests_without_token_are_rejected(client):
    response = await client.get(f"/media/{uuid4()}")

    assert response.status_code == 401


async def test_requests_with_invalid_token_are_rejected(client):
    response = await client.get(f"/media/{uuid4()}", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


async def test_valid_token_reaches_controller(client, override_dependencies):
    override_dependencies(RecordingDispatcher())
    app.dependency_overrides.pop(get_current_identity)
    token = create_access_token("user-1", "analyst@example.com")

    response = await client.get(f"/media/{uuid4()}", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 404
    assert response.json() == {"detail": "Media not found"}


async def test_subject_crud_and_empty_analyses(client, override_dependencies):
    override_dependencies(RecordingDispatcher())

    created = await client.post("/subjects", json={"name": "  Grace  "})
    assert created.status_code == 201
    subject_id = created.json()["id"]
    assert created.json()["name"] == "Grace"

    fetched = await client.get(f"/subjects/{subject_id}")
    assert fetched.status_code == 200

    analyses = await client.get(f"/subjects/{subject_id}/analyses")
    assert analyses.json() == {"subjectId": subject_id, "items": []}

    missing = await client.get(f"/subjects/{uuid4()}")
    assert missing.status_code == 404


async def test_signed_url_for_unknown_subject(client, override_dependencies):
    override_dependencies(RecordingDispatcher())

    response = await client.post(
        "/media/signed-url",
        json={"userId": str(uuid4()), "type": "image", "contentType": "image/jpeg"},
    )

    assert response.status_code == 404
    assert response.json()["detail"] == "User not found"


async def test_signed_url_creates_pending_record(client, override_dependencies, subject, s3_client):
    override_dependencies(RecordingDispatcher())

    response = await client.post(
        "/media/signed-url",
        json={"userId": str(subject.id), "type": "audio", "contentType": "audio/mpeg"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["storagePath"].startswith(f"audio/{subject.id}/")
    assert body["uploadUrl"].startswith("https://audio.s3.test/")
    assert s3_client.presign_calls[0]["params"]["ContentType"] == "audio/mpeg"

    record = await client.get(f"/media/{body['mediaId']}")
    assert record.json()["status"] == "pending"
    assert record.json()["type"] == "audio"


async def test_trigger_preconditions(client, override_dependencies, subject):
    override_dependencies(RecordingDispatcher())
    created = await client.post(
        "/media",
        json={"userId": str(subject.id), "type": "image", "storagePath": f"images/{subject.id}/1-abcdef"},
    )
    media_id = created.json()["id"]

    unknown = await client.post(f"/media/{uuid4()}/analysis")
    assert unknown.status_code == 404

    accepted = await client.post(f"/media/{media_id}/analysis")
    assert accepted.status_code == 202
    assert accepted.json() == {"status": "processing", "mediaId": media_id}

    again = await client.post(f"/media/{media_id}/analysis")
    assert again.status_code == 409

    record = (await client.get(f"/media/{media_id}")).json()
    assert record["status"] == "processing"
    assert record["provider"] == "bedrock_vision"
    assert record["model"] == "test-vision-model"


async def test_trigger_with_full_queue_is_unavailable(client, override_dependencies, subject):
    class FullQueue:
        async def submit(self, media_id):
            raise QueueFullError("Analysis queue is full (10 jobs waiting)")

    override_dependencies(FullQueue())
    created = await client.post(
        "/media",
        json={"userId": str(subject.id), "type": "image", "storagePath": f"images/{subject.id}/1-abcdef"},
    )
    media_id = created.json()["id"]

    response = await client.post(f"/media/{media_id}/analysis")

    assert response.status_code == 503
    assert "queue is full" in response.json()["detail"]
    record = (await client.get(f"/media/{media_id}")).json()
    assert record["status"] == "failed"
    assert record["errorDetail"] == {"kind": "SchedulingError"}

    reset = await client.post(f"/media/{media_id}/analysis/reset")
    assert reset.json()["status"] == "pending"


async def test_image_analysis_end_to_end(client, override_dependencies, pool, subject, s3_client, make_jpeg):
    orchestrator = override_dependencies(pool)
    pool.start(orchestrator.run_analysis)

    signed = (
        await client.post(
            "/media/signed-url",
            json={"userId": str(subject.id), "type": "image", "contentType": "image/jpeg"},
        )
    ).json()
    s3_client.put(signed["storagePath"], make_jpeg(1200, 800))

    accepted = await client.post(f"/media/{signed['mediaId']}/analysis")
    assert accepted.status_code == 202
    await pool.join()

    record = (await client.get(f"/media/{signed['mediaId']}")).json()
    assert record["status"] == "succeeded"
    assert record["analysisJson"]["provider"] == "bedrock_vision"
    assert record["analysisJson"]["sizeMetadata"]["width"] == 768
    assert record["error"] is None

    completed = await client.post(f"/media/{signed['mediaId']}/analysis")
    assert completed.status_code == 400

    analyses = (await client.get(f"/subjects/{subject.id}/analyses", params={"type": "image"})).json()
    assert [item["id"] for item in analyses["items"]] == [signed["mediaId"]]


async def test_audio_without_api_key_fails_and_can_be_reset(client, override_dependencies, pool, subject, s3_client):
    orchestrator = override_dependencies(pool)
    pool.start(orchestrator.run_analysis)

    created = (
        await client.post(
            "/media",
            json={
                "userId": str(subject.id),
                "type": "audio",
                "storagePath": f"audio/{subject.id}/1-voice1",
                "contentType": "audio/mpeg",
            },
        )
    ).json()
    s3_client.put(created["storagePath"], b"ID3audio")

    accepted = await client.post(f"/media/{created['id']}/analysis")
    assert accepted.status_code == 202
    await pool.join()

    record = (await client.get(f"/media/{created['id']}")).json()
    assert record["status"] == "failed"
    assert record["error"] == "Hume API key is not configured"
    assert record["errorDetail"] == {"kind": "ProviderConfigError"}
    assert record["analysisJson"] is None

    retried = await client.post(f"/media/{created['id']}/analysis")
    assert retried.status_code == 400

    reset = await client.post(f"/media/{created['id']}/analysis/reset")
    assert reset.status_code == 200
    assert reset.json()["status"] == "pending"

    not_failed = await client.post(f"/media/{created['id']}/analysis/reset")
    assert not_failed.status_code == 400


async def test_health_and_metrics(client):
    health = await client.get("/health")
    assert health.json()["status"] == "healthy"

    metrics = await client.get("/metrics")
    assert metrics.status_code == 200
    assert "media_analysis_triggers_total" in metrics.text
