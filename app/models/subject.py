"""SQLAlchemy model for analysed subjects."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String, Uuid
from sqlalchemy.orm import relationship

from app.models.base import Base


class Subject(Base):
    """Person whose media is uploaded and analysed."""

    __tablename__ = "subjects"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    name = Column(String(120), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    media = relationship(
        "MediaRecord",
        back_populates="owner",
        cascade="all, delete-orphan",
        lazy="select",
    )


__all__ = ["Subject"]
