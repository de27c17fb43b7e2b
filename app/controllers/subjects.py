"""Subject controller: the owners media records hang off."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select

from app.controllers.dependencies import (
    CurrentIdentityDep,
    MediaRepositoryDep,
    SessionDep,
)
from app.models.media import MediaType
from app.models.subject import Subject as SubjectModel
from app.views import (
    MediaResponse,
    SubjectAnalysesResponse,
    SubjectCreateRequest,
    SubjectResponse,
)

router = APIRouter(prefix="/subjects", tags=["subjects"])


async def _get_subject_or_404(session: SessionDep, subject_id: UUID) -> SubjectModel:
    result = await session.execute(
        select(SubjectModel).where(SubjectModel.id == subject_id)
    )
    subject = result.scalar_one_or_none()
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Subject not found"
        )
    return subject


@router.post("", response_model=SubjectResponse, status_code=status.HTTP_201_CREATED)
async def create_subject(
    payload: SubjectCreateRequest,
    session: SessionDep,
    _identity: CurrentIdentityDep,
) -> SubjectResponse:
    db_subject = SubjectModel(name=payload.name.strip())
    session.add(db_subject)
    await session.commit()
    await session.refresh(db_subject)
    return SubjectResponse.model_validate(db_subject)


@router.get("/{subject_id}", response_model=SubjectResponse)
async def get_subject(
    subject_id: UUID,
    session: SessionDep,
    _identity: CurrentIdentityDep,
) -> SubjectResponse:
    subject = await _get_subject_or_404(session, subject_id)
    return SubjectResponse.model_validate(subject)


@router.get("/{subject_id}/analyses", response_model=SubjectAnalysesResponse)
async def list_subject_analyses(
    subject_id: UUID,
    session: SessionDep,
    repository: MediaRepositoryDep,
    _identity: CurrentIdentityDep,
    type: Optional[MediaType] = None,
) -> SubjectAnalysesResponse:
    """Succeeded analyses for a subject, oldest first, for report composition."""

    await _get_subject_or_404(session, subject_id)
    records = await repository.list_succeeded_payloads(subject_id, media_type=type)
    return SubjectAnalysesResponse(
        subjectId=subject_id,
        items=[MediaResponse.from_record(record) for record in records],
    )
