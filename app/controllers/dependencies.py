"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session
from app.pipelines.analysis import AnalysisOrchestrator, AnalysisRuntime
from app.services.media_repository import MediaRepository
from app.services.storage import MediaStorage
from app.utils import AuthenticationError, Identity, verify_identity

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_current_identity(
    token: Annotated[str | None, Depends(oauth2_scheme)],
) -> Identity:
    """Resolve the caller identity from the bearer token."""

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return verify_identity(token)
    except AuthenticationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None


def get_analysis_runtime(request: Request) -> AnalysisRuntime:
    runtime = getattr(request.app.state, "analysis", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analysis pipeline is not running",
        )
    return runtime


def get_orchestrator(
    runtime: Annotated[AnalysisRuntime, Depends(get_analysis_runtime)],
) -> AnalysisOrchestrator:
    return runtime.orchestrator


def get_media_repository(
    runtime: Annotated[AnalysisRuntime, Depends(get_analysis_runtime)],
) -> MediaRepository:
    return runtime.repository


def get_media_storage(
    runtime: Annotated[AnalysisRuntime, Depends(get_analysis_runtime)],
) -> MediaStorage:
    return runtime.storage


CurrentIdentityDep = Annotated[Identity, Depends(get_current_identity)]
OrchestratorDep = Annotated[AnalysisOrchestrator, Depends(get_orchestrator)]
MediaRepositoryDep = Annotated[MediaRepository, Depends(get_media_repository)]
MediaStorageDep = Annotated[MediaStorage, Depends(get_media_storage)]


__all__ = [
    "CurrentIdentityDep",
    "MediaRepositoryDep",
    "MediaStorageDep",
    "OrchestratorDep",
    "SessionDep",
    "get_analysis_runtime",
    "get_current_identity",
    "get_media_repository",
    "get_media_storage",
    "get_orchestrator",
    "oauth2_scheme",
]
