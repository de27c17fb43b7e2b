"""Service layer helpers for persistence and external integrations."""

from .hume_client import HumeApiError, HumeBatchClient, HumeResponseError, JobState
from .media_repository import MediaRepository
from .storage import MediaStorage, StorageError
from .vision_client import (
    BedrockVisionClient,
    VisionCredentialsError,
    VisionInvocationError,
)

__all__ = [
    "BedrockVisionClient",
    "HumeApiError",
    "HumeBatchClient",
    "HumeResponseError",
    "JobState",
    "MediaRepository",
    "MediaStorage",
    "StorageError",
    "VisionCredentialsError",
    "VisionInvocationError",
]
