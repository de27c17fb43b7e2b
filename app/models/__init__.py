"""SQLAlchemy models for the MVC architecture."""

from .base import Base
from .media import MediaRecord, MediaStatus, MediaType  # noqa: F401
from .subject import Subject  # noqa: F401

__all__ = [
    "Base",
    "MediaRecord",
    "MediaStatus",
    "MediaType",
    "Subject",
]
