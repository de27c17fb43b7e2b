"""Media analysis pipeline package.

Modules follow the order in which a triggered analysis executes:

1. `orchestrator` – guarded ``pending -> processing`` claim and dispatch.
2. `worker` – bounded pool that runs claimed jobs in the background.
3. `image` / `audio` – provider adapters (Bedrock vision, Hume batch jobs).
4. `types` – provider-tagged payloads written back on success.

`errors` holds the shared exception taxonomy and `runtime` wires the pieces
together for the FastAPI application.
"""

from .audio import AudioAnalysisAdapter
from .errors import (
    AnalysisConflictError,
    AnalysisError,
    AnalysisRejectedError,
    AnalysisSchedulingError,
    InvalidMediaStateError,
    MalformedResponseError,
    MediaNotFoundError,
    ProviderConfigError,
    ProviderError,
    ProviderTimeoutError,
    ProviderTransportError,
)
from .image import ImageAnalysisAdapter
from .orchestrator import AnalysisOrchestrator
from .runtime import AnalysisRuntime, build_analysis_runtime
from .types import (
    AnalysisPayload,
    AudioAnalysisPayload,
    ImageAnalysisPayload,
    parse_payload,
)
from .worker import AnalysisWorkerPool, QueueFullError

__all__ = [
    "AnalysisConflictError",
    "AnalysisError",
    "AnalysisOrchestrator",
    "AnalysisPayload",
    "AnalysisRejectedError",
    "AnalysisRuntime",
    "AnalysisSchedulingError",
    "AnalysisWorkerPool",
    "AudioAnalysisAdapter",
    "AudioAnalysisPayload",
    "ImageAnalysisAdapter",
    "ImageAnalysisPayload",
    "InvalidMediaStateError",
    "MalformedResponseError",
    "MediaNotFoundError",
    "ProviderConfigError",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderTransportError",
    "QueueFullError",
    "build_analysis_runtime",
    "parse_payload",
]
