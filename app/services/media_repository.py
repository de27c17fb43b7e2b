"""Repository helpers for reading and transitioning media records.

Every state change is a single conditional ``UPDATE`` so that the row's
``status`` column is the only coordination point between concurrent
requests and background workers.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, AsyncContextManager, Callable, Mapping
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.media import MediaRecord, MediaStatus, MediaType
from app.models.subject import Subject

logger = logging.getLogger(__name__)

SessionProvider = Callable[[], AsyncContextManager[AsyncSession]]


class MediaRepository:
    """Persistence gateway for ``MediaRecord`` rows."""

    def __init__(self, session_provider: SessionProvider) -> None:
        self._session_provider = session_provider

    async def create(
        self,
        *,
        owner_id: UUID,
        media_type: MediaType,
        storage_path: str,
        content_type: str | None = None,
    ) -> MediaRecord:
        """Insert a new record in ``pending`` state."""

        async with self._session_provider() as session:
            record = MediaRecord(
                owner_id=owner_id,
                media_type=media_type,
                storage_path=storage_path,
                content_type=content_type,
                status=MediaStatus.PENDING,
            )
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return record

    async def get(self, media_id: UUID) -> MediaRecord | None:
        async with self._session_provider() as session:
            result = await session.execute(
                select(MediaRecord).where(MediaRecord.id == media_id)
            )
            return result.scalar_one_or_none()

    async def subject_exists(self, subject_id: UUID) -> bool:
        async with self._session_provider() as session:
            result = await session.execute(
                select(Subject.id).where(Subject.id == subject_id)
            )
            return result.scalar_one_or_none() is not None

    async def _compare_and_set(
        self,
        media_id: UUID,
        *,
        expected: MediaStatus,
        values: Mapping[str, Any],
    ) -> bool:
        """Apply ``values`` only if the row is still in ``expected`` state."""

        async with self._session_provider() as session:
            result = await session.execute(
                update(MediaRecord)
                .where(MediaRecord.id == media_id, MediaRecord.status == expected)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1

    async def claim_for_analysis(
        self,
        media_id: UUID,
        *,
        provider: str,
        model: str,
    ) -> MediaRecord | None:
        """Move ``pending -> processing``; returns None if another caller won."""

        claimed = await self._compare_and_set(
            media_id,
            expected=MediaStatus.PENDING,
            values={
                "status": MediaStatus.PROCESSING,
                "provider": provider,
                "model": model,
                "error": None,
                "error_detail": None,
                "analysis_payload": None,
                "analysis_started_at": datetime.utcnow(),
                "analysis_completed_at": None,
            },
        )
        if not claimed:
            return None
        return await self.get(media_id)

    async def release_claim(self, media_id: UUID) -> bool:
        """Undo ``claim_for_analysis`` for a job that was never queued."""

        return await self._compare_and_set(
            media_id,
            expected=MediaStatus.PROCESSING,
            values={
                "status": MediaStatus.PENDING,
                "provider": None,
                "model": None,
                "analysis_started_at": None,
            },
        )

    async def mark_succeeded(self, media_id: UUID, payload: Mapping[str, Any]) -> bool:
        applied = await self._compare_and_set(
            media_id,
            expected=MediaStatus.PROCESSING,
            values={
                "status": MediaStatus.SUCCEEDED,
                "analysis_payload": dict(payload),
                "error": None,
                "error_detail": None,
                "analysis_completed_at": datetime.utcnow(),
            },
        )
        if not applied:
            logger.warning("Discarded success for media_id=%s; record left processing state", media_id)
        return applied

    async def mark_failed(
        self,
        media_id: UUID,
        message: str,
        *,
        detail: Mapping[str, Any] | None = None,
    ) -> bool:
        applied = await self._compare_and_set(
            media_id,
            expected=MediaStatus.PROCESSING,
            values={
                "status": MediaStatus.FAILED,
                "analysis_payload": None,
                "error": message,
                "error_detail": dict(detail) if detail else None,
                "analysis_completed_at": datetime.utcnow(),
            },
        )
        if not applied:
            logger.warning("Discarded failure for media_id=%s; record left processing state", media_id)
        return applied

    async def reset_for_retry(self, media_id: UUID) -> MediaRecord | None:
        """Move ``failed -> pending`` so the record can be triggered again."""

        reset = await self._compare_and_set(
            media_id,
            expected=MediaStatus.FAILED,
            values={
                "status": MediaStatus.PENDING,
                "provider": None,
                "model": None,
                "error": None,
                "error_detail": None,
                "analysis_payload": None,
                "analysis_started_at": None,
                "analysis_completed_at": None,
            },
        )
        if not reset:
            return None
        return await self.get(media_id)

    async def requeue_stale(self, cutoff: datetime) -> list[UUID]:
        """Return ids of ``processing`` rows started before ``cutoff``.

        Each returned row has its ``analysis_started_at`` bumped through a
        conditional update so a concurrent recovery pass cannot resume it too.
        """

        async with self._session_provider() as session:
            result = await session.execute(
                select(MediaRecord.id, MediaRecord.analysis_started_at).where(
                    MediaRecord.status == MediaStatus.PROCESSING,
                    MediaRecord.analysis_started_at < cutoff,
                )
            )
            candidates = result.all()

            reclaimed: list[UUID] = []
            now = datetime.utcnow()
            for media_id, started_at in candidates:
                bumped = await session.execute(
                    update(MediaRecord)
                    .where(
                        MediaRecord.id == media_id,
                        MediaRecord.status == MediaStatus.PROCESSING,
                        MediaRecord.analysis_started_at == started_at,
                    )
                    .values(analysis_started_at=now)
                    .execution_options(synchronize_session=False)
                )
                if bumped.rowcount == 1:
                    reclaimed.append(media_id)
            await session.commit()
            return reclaimed

    async def list_succeeded_payloads(
        self,
        owner_id: UUID,
        *,
        media_type: MediaType | None = None,
    ) -> list[MediaRecord]:
        """Succeeded records for one subject, oldest first (report composer input)."""

        async with self._session_provider() as session:
            statement = select(MediaRecord).where(
                MediaRecord.owner_id == owner_id,
                MediaRecord.status == MediaStatus.SUCCEEDED,
            )
            if media_type is not None:
                statement = statement.where(MediaRecord.media_type == media_type)
            result = await session.execute(statement.order_by(MediaRecord.created_at))
            return list(result.scalars().all())


__all__ = ["MediaRepository", "SessionProvider"]
