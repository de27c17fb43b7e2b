"""Pydantic schemas used as views in the MVC architecture."""

from .common import ErrorResponse
from .media import (
    AnalysisAcceptedResponse,
    MediaCreateRequest,
    MediaResponse,
    SignedUrlRequest,
    SignedUrlResponse,
)
from .subjects import SubjectAnalysesResponse, SubjectCreateRequest, SubjectResponse

__all__ = [
    "AnalysisAcceptedResponse",
    "ErrorResponse",
    "MediaCreateRequest",
    "MediaResponse",
    "SignedUrlRequest",
    "SignedUrlResponse",
    "SubjectAnalysesResponse",
    "SubjectCreateRequest",
    "SubjectResponse",
]
