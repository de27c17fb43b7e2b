"""Wiring for the analysis pipeline: storage, provider clients, adapters and workers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from app.config.settings import Settings
from app.models.media import MediaType
from app.pipelines.analysis.audio import AudioAnalysisAdapter
from app.pipelines.analysis.image import ImageAnalysisAdapter
from app.pipelines.analysis.orchestrator import AnalysisOrchestrator, run_recovery_loop
from app.pipelines.analysis.worker import AnalysisWorkerPool
from app.services.hume_client import HumeBatchClient
from app.services.media_repository import MediaRepository, SessionProvider
from app.services.storage import MediaStorage
from app.services.vision_client import BedrockVisionClient

logger = logging.getLogger(__name__)


@dataclass
class AnalysisRuntime:
    """Long-lived pipeline objects owned by the FastAPI application."""

    settings: Settings
    repository: MediaRepository
    storage: MediaStorage
    orchestrator: AnalysisOrchestrator
    pool: AnalysisWorkerPool
    hume_client: HumeBatchClient
    _recovery_task: asyncio.Task | None = field(default=None, init=False, repr=False)

    @property
    def recovering(self) -> bool:
        return self._recovery_task is not None and not self._recovery_task.done()

    async def start(self) -> None:
        """Start the workers and the orphan sweep; the first sweep runs immediately."""

        self.pool.start(self.orchestrator.run_analysis)
        config = self.settings.analysis
        if config.recover_on_startup:
            self._recovery_task = asyncio.create_task(
                run_recovery_loop(
                    self.orchestrator,
                    stale_after_seconds=config.stale_after_seconds,
                    interval_seconds=config.stale_after_seconds / 2,
                ),
                name="analysis-recovery",
            )

    async def stop(self) -> None:
        if self._recovery_task is not None:
            self._recovery_task.cancel()
            await asyncio.gather(self._recovery_task, return_exceptions=True)
            self._recovery_task = None
        await self.pool.stop()
        await self.hume_client.aclose()


def build_analysis_runtime(settings: Settings, session_provider: SessionProvider) -> AnalysisRuntime:
    """Create every pipeline collaborator from configuration.

    No provider credential is checked here; missing keys surface when a job
    runs so the service can boot without them.
    """

    repository = MediaRepository(session_provider)
    storage = MediaStorage(settings.storage)
    hume_client = HumeBatchClient(settings.hume)
    adapters = {
        MediaType.IMAGE: ImageAnalysisAdapter(
            settings.vision,
            storage,
            BedrockVisionClient(settings.vision),
        ),
        MediaType.AUDIO: AudioAnalysisAdapter(settings.hume, storage, hume_client),
    }
    pool = AnalysisWorkerPool(
        worker_count=settings.analysis.worker_count,
        queue_size=settings.analysis.queue_size,
    )
    orchestrator = AnalysisOrchestrator(repository, adapters, pool)
    return AnalysisRuntime(
        settings=settings,
        repository=repository,
        storage=storage,
        orchestrator=orchestrator,
        pool=pool,
        hume_client=hume_client,
    )


__all__ = ["AnalysisRuntime", "build_analysis_runtime"]
