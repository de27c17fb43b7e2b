"""Media upload and analysis endpoints.

``POST /media/{media_id}/analysis`` only claims the record and queues the job;
the provider call happens on a worker (see `app.pipelines.analysis`). Clients
poll ``GET /media/{media_id}`` for the terminal ``succeeded``/``failed`` state.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from app.controllers.dependencies import (
    CurrentIdentityDep,
    MediaRepositoryDep,
    MediaStorageDep,
    OrchestratorDep,
)
from app.pipelines.analysis import AnalysisRejectedError, AnalysisSchedulingError
from app.services.storage import StorageError
from app.views import (
    AnalysisAcceptedResponse,
    ErrorResponse,
    MediaCreateRequest,
    MediaResponse,
    SignedUrlRequest,
    SignedUrlResponse,
)

router = APIRouter(prefix="/media", tags=["media"])

logger = logging.getLogger(__name__)

_REJECTION_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Media is not pending"},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse, "description": "Media not found"},
    status.HTTP_409_CONFLICT: {"model": ErrorResponse, "description": "Analysis already in progress"},
}

_TRIGGER_RESPONSES = {
    **_REJECTION_RESPONSES,
    status.HTTP_503_SERVICE_UNAVAILABLE: {
        "model": ErrorResponse,
        "description": "Analysis queue is full; the record is marked failed",
    },
}


def _rejection_to_http(exc: AnalysisRejectedError | AnalysisSchedulingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


async def _ensure_subject(repository: MediaRepositoryDep, subject_id: UUID) -> None:
    if not await repository.subject_exists(subject_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
        )


@router.post(
    "/signed-url",
    response_model=SignedUrlResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_signed_upload_url(
    payload: SignedUrlRequest,
    _identity: CurrentIdentityDep,
    repository: MediaRepositoryDep,
    storage: MediaStorageDep,
) -> SignedUrlResponse:
    """Reserve a storage path, sign an upload URL and create a pending record."""

    await _ensure_subject(repository, payload.userId)

    storage_path = storage.build_storage_path(payload.userId, payload.type)
    try:
        upload_url = await storage.create_upload_url(storage_path, payload.contentType)
    except StorageError as exc:
        logger.error("Signed URL creation failed path=%s: %s", storage_path, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc

    record = await repository.create(
        owner_id=payload.userId,
        media_type=payload.type,
        storage_path=storage_path,
        content_type=payload.contentType,
    )
    return SignedUrlResponse(
        uploadUrl=upload_url,
        storagePath=storage_path,
        mediaId=record.id,
    )


@router.post("", response_model=MediaResponse, status_code=status.HTTP_201_CREATED)
async def create_media(
    payload: MediaCreateRequest,
    _identity: CurrentIdentityDep,
    repository: MediaRepositoryDep,
) -> MediaResponse:
    """Register media already uploaded to ``storagePath`` in pending state."""

    await _ensure_subject(repository, payload.userId)
    record = await repository.create(
        owner_id=payload.userId,
        media_type=payload.type,
        storage_path=payload.storagePath,
        content_type=payload.contentType,
    )
    return MediaResponse.from_record(record)


@router.post(
    "/{media_id}/analysis",
    response_model=AnalysisAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=_TRIGGER_RESPONSES,
)
async def trigger_analysis(
    media_id: UUID,
    _identity: CurrentIdentityDep,
    orchestrator: OrchestratorDep,
) -> AnalysisAcceptedResponse:
    """Start analysis for a pending record; 404/400/409 on precondition failures.

    503 means no worker slot was free; the record is then ``failed`` and can be
    reset and retried.
    """

    try:
        await orchestrator.trigger_analysis(media_id)
    except (AnalysisRejectedError, AnalysisSchedulingError) as exc:
        raise _rejection_to_http(exc) from exc
    return AnalysisAcceptedResponse(mediaId=media_id)


@router.post(
    "/{media_id}/analysis/reset",
    response_model=MediaResponse,
    responses=_REJECTION_RESPONSES,
)
async def reset_analysis(
    media_id: UUID,
    _identity: CurrentIdentityDep,
    orchestrator: OrchestratorDep,
) -> MediaResponse:
    """Move a failed record back to pending so it can be triggered again."""

    try:
        record = await orchestrator.reset_for_retry(media_id)
    except AnalysisRejectedError as exc:
        raise _rejection_to_http(exc) from exc
    return MediaResponse.from_record(record)


@router.get("/{media_id}", response_model=MediaResponse)
async def get_media(
    media_id: UUID,
    _identity: CurrentIdentityDep,
    repository: MediaRepositoryDep,
) -> MediaResponse:
    record = await repository.get(media_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Media not found"
        )
    return MediaResponse.from_record(record)
