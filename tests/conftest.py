"""Shared fixtures: throwaway SQLite database, fake S3/Bedrock clients and helpers."""

from __future__ import annotations

import io
from contextlib import asynccontextmanager
from pathlib import Path
import sys
from typing import Any, AsyncIterator
from uuid import UUID

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from app.config.settings import StorageConfig  # noqa: E402
from app.models import Base, MediaType, Subject  # noqa: E402
from app.services.media_repository import MediaRepository  # noqa: E402
from app.services.storage import MediaStorage  # noqa: E402


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls used by MediaStorage."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.presign_calls: list[dict[str, Any]] = []

    def put(self, storage_path: str, data: bytes) -> None:
        self.objects[MediaStorage.split_path(storage_path)] = data

    def get_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        try:
            data = self.objects[(Bucket, Key)]
        except KeyError:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
                "GetObject",
            ) from None
        return {"Body": io.BytesIO(data)}

    def generate_presigned_url(self, ClientMethod: str, Params: dict[str, Any], ExpiresIn: int) -> str:
        self.presign_calls.append({"method": ClientMethod, "params": Params, "expires": ExpiresIn})
        return f"https://{Params['Bucket']}.s3.test/{Params['Key']}?X-Amz-Expires={ExpiresIn}"


class FakeVisionClient:
    """Returns a canned description or raises a configured error."""

    model_id = "test-vision-model"

    def __init__(self, description: str = "A calm, smiling person outdoors.", error: Exception | None = None) -> None:
        self.description = description
        self.error = error
        self.calls: list[bytes] = []

    async def describe(self, image_bytes: bytes, *, system_prompt: str, user_prompt: str, image_format: str = "jpeg") -> str:
        self.calls.append(image_bytes)
        if self.error is not None:
            raise self.error
        return self.description


class RecordingDispatcher:
    """Collects submitted media ids instead of running them."""

    def __init__(self) -> None:
        self.submitted: list[UUID] = []

    async def submit(self, media_id: UUID) -> None:
        self.submitted.append(media_id)


@pytest_asyncio.fixture
async def session_provider(tmp_path: Path) -> AsyncIterator[Any]:
    """File-backed SQLite database so concurrent sessions see each other's commits."""

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'media.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    @asynccontextmanager
    async def provider() -> AsyncIterator[AsyncSession]:
        async with factory() as session:
            yield session

    yield provider
    await engine.dispose()


@pytest.fixture
def repository(session_provider: Any) -> MediaRepository:
    return MediaRepository(session_provider)


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def storage(s3_client: FakeS3Client) -> MediaStorage:
    return MediaStorage(StorageConfig(), client=s3_client)


@pytest_asyncio.fixture
async def subject(session_provider: Any) -> Subject:
    async with session_provider() as session:
        record = Subject(name="Ada")
        session.add(record)
        await session.commit()
        await session.refresh(record)
        return record


@pytest.fixture
def make_media(repository: MediaRepository, storage: MediaStorage, s3_client: FakeS3Client, subject: Subject):
    """Create a pending media record, optionally with stored bytes."""

    async def _make(media_type: MediaType = MediaType.IMAGE, data: bytes | None = None, content_type: str | None = None):
        storage_path = storage.build_storage_path(subject.id, media_type)
        if data is not None:
            s3_client.put(storage_path, data)
        return await repository.create(
            owner_id=subject.id,
            media_type=media_type,
            storage_path=storage_path,
            content_type=content_type,
        )

    return _make


def jpeg_bytes(width: int = 64, height: int = 48, color: str = "navy") -> bytes:
    from PIL import Image

    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def make_jpeg():
    return jpeg_bytes
