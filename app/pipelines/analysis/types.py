"""Typed analysis payloads stored on ``MediaRecord.analysis_payload``.

Each provider produces its own pydantic model tagged by ``provider`` so the
JSON blob in the database can be parsed back into the right shape.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Mapping, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

IMAGE_PROVIDER = "bedrock_vision"
AUDIO_PROVIDER = "hume"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ImageSizeMetadata(BaseModel):
    originalWidth: int
    originalHeight: int
    width: int
    height: int
    resized: bool
    byteSize: int


class ImageAnalysisPayload(BaseModel):
    """Vision model narration of a subject photo."""

    provider: Literal["bedrock_vision"] = IMAGE_PROVIDER
    model: str
    description: str
    timestamp: datetime = Field(default_factory=utc_now)
    sizeMetadata: ImageSizeMetadata

    model_config = ConfigDict(extra="ignore")


class EmotionScore(BaseModel):
    name: str
    score: float


class AudioAnalysisPayload(BaseModel):
    """Aggregated voice expression scores from a Hume batch job."""

    provider: Literal["hume"] = AUDIO_PROVIDER
    model: str
    jobId: str
    processedAt: datetime = Field(default_factory=utc_now)
    emotions: dict[str, float] = Field(default_factory=dict)
    vocalBursts: dict[str, float] = Field(default_factory=dict)
    topEmotions: list[EmotionScore] = Field(default_factory=list)
    segmentCount: int = 0
    rawResponse: Any = None

    model_config = ConfigDict(extra="ignore")


AnalysisPayload = Annotated[
    Union[ImageAnalysisPayload, AudioAnalysisPayload],
    Field(discriminator="provider"),
]

_payload_adapter: TypeAdapter[AnalysisPayload] = TypeAdapter(AnalysisPayload)


def parse_payload(raw: Mapping[str, Any] | None) -> AnalysisPayload | None:
    """Rebuild a typed payload from the stored JSON blob."""

    if raw is None:
        return None
    return _payload_adapter.validate_python(raw)


def dump_payload(payload: AnalysisPayload) -> dict[str, Any]:
    return payload.model_dump(mode="json")


class AnalysisAdapter(Protocol):
    """Strategy that runs one provider against one media record."""

    provider: str
    model: str

    async def analyze(self, record: Any) -> AnalysisPayload:
        ...


__all__ = [
    "AUDIO_PROVIDER",
    "IMAGE_PROVIDER",
    "AnalysisAdapter",
    "AnalysisPayload",
    "AudioAnalysisPayload",
    "EmotionScore",
    "ImageAnalysisPayload",
    "ImageSizeMetadata",
    "dump_payload",
    "parse_payload",
    "utc_now",
]
