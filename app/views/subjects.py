"""Pydantic schemas for subjects."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.views.media import MediaResponse


class SubjectCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)


class SubjectResponse(BaseModel):
    id: UUID
    name: str
    createdAt: datetime = Field(..., validation_alias="created_at")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class SubjectAnalysesResponse(BaseModel):
    subjectId: UUID
    items: list[MediaResponse]
