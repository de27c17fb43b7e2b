"""SQLAlchemy model for uploaded media and its analysis lifecycle."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Column, DateTime
from sqlalchemy import Enum as SqlEnum
from sqlalchemy import ForeignKey, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.models.base import Base

JsonColumnType = JSON().with_variant(JSONB(), "postgresql")


class MediaType(str, Enum):
    """Kind of uploaded asset; decides which analysis provider runs."""

    IMAGE = "image"
    AUDIO = "audio"


class MediaStatus(str, Enum):
    """Analysis lifecycle states."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (MediaStatus.SUCCEEDED, MediaStatus.FAILED)


class MediaRecord(Base):
    __tablename__ = "media"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    owner_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    media_type = Column(
        SqlEnum(MediaType, name="media_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    storage_path = Column(String(1024), nullable=False)
    content_type = Column(String(255), nullable=True)
    status = Column(
        SqlEnum(MediaStatus, name="media_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=MediaStatus.PENDING,
        index=True,
    )
    provider = Column(String(64), nullable=True)
    model = Column(String(128), nullable=True)
    analysis_payload = Column(JsonColumnType, nullable=True)
    error = Column(Text, nullable=True)
    # Raw provider response or HTTP status kept for operators; never read by the pipeline.
    error_detail = Column(JsonColumnType, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )
    analysis_started_at = Column(DateTime, nullable=True)
    analysis_completed_at = Column(DateTime, nullable=True)

    owner = relationship("Subject", back_populates="media", lazy="raise")


__all__ = ["MediaRecord", "MediaStatus", "MediaType"]
