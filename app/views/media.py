"""Pydantic schemas for media upload and analysis endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.models.media import MediaRecord, MediaStatus, MediaType
from app.pipelines.analysis.types import AnalysisPayload, parse_payload


class SignedUrlRequest(BaseModel):
    userId: UUID = Field(..., validation_alias=AliasChoices("userId", "ownerId"))
    type: MediaType
    contentType: str = Field(..., min_length=1, max_length=255)


class SignedUrlResponse(BaseModel):
    uploadUrl: str
    storagePath: str
    mediaId: UUID


class MediaCreateRequest(BaseModel):
    userId: UUID = Field(..., validation_alias=AliasChoices("userId", "ownerId"))
    type: MediaType
    storagePath: str = Field(..., min_length=1, max_length=1024)
    contentType: Optional[str] = Field(None, max_length=255)


class AnalysisAcceptedResponse(BaseModel):
    status: Literal["processing"] = "processing"
    mediaId: UUID


class MediaResponse(BaseModel):
    """Full media record including the analysis outcome."""

    id: UUID
    userId: UUID
    type: MediaType
    storagePath: str
    contentType: Optional[str] = None
    status: MediaStatus
    provider: Optional[str] = None
    model: Optional[str] = None
    analysisJson: Optional[AnalysisPayload] = None
    error: Optional[str] = None
    errorDetail: Optional[dict[str, Any]] = None
    createdAt: datetime
    updatedAt: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_record(cls, record: MediaRecord) -> "MediaResponse":
        return cls(
            id=record.id,
            userId=record.owner_id,
            type=record.media_type,
            storagePath=record.storage_path,
            contentType=record.content_type,
            status=record.status,
            provider=record.provider,
            model=record.model,
            analysisJson=parse_payload(record.analysis_payload),
            error=record.error,
            errorDetail=record.error_detail,
            createdAt=record.created_at,
            updatedAt=record.updated_at,
        )


__all__ = [
    "AnalysisAcceptedResponse",
    "MediaCreateRequest",
    "MediaResponse",
    "SignedUrlRequest",
    "SignedUrlResponse",
]
