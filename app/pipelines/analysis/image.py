"""Single-call image analysis through a Bedrock vision model."""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass

from fastapi.concurrency import run_in_threadpool
from PIL import Image, ImageOps, UnidentifiedImageError

from app.config.settings import VisionConfig
from app.models.media import MediaRecord, MediaType
from app.pipelines.analysis.errors import (
    MalformedResponseError,
    ProviderConfigError,
    ProviderTimeoutError,
    ProviderTransportError,
)
from app.pipelines.analysis.prompts import IMAGE_SYSTEM_PROMPT, IMAGE_USER_PROMPT
from app.pipelines.analysis.types import (
    IMAGE_PROVIDER,
    ImageAnalysisPayload,
    ImageSizeMetadata,
)
from app.services.storage import MediaStorage, StorageError
from app.services.vision_client import (
    BedrockVisionClient,
    VisionCredentialsError,
    VisionInvocationError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedImage:
    data: bytes
    size: ImageSizeMetadata


def prepare_image(raw: bytes, max_edge: int) -> PreparedImage:
    """Decode, orient and cap the longest edge at ``max_edge`` pixels, as JPEG."""

    try:
        with Image.open(io.BytesIO(raw)) as source:
            image = ImageOps.exif_transpose(source)
            original_width, original_height = image.size
            if image.mode != "RGB":
                image = image.convert("RGB")
            resized = max(original_width, original_height) > max_edge
            if resized:
                image.thumbnail((max_edge, max_edge), Image.Resampling.LANCZOS)
            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=90)
    except (UnidentifiedImageError, OSError) as exc:
        raise MalformedResponseError(f"Stored image could not be decoded: {exc}") from exc

    data = buffer.getvalue()
    width, height = image.size
    return PreparedImage(
        data=data,
        size=ImageSizeMetadata(
            originalWidth=original_width,
            originalHeight=original_height,
            width=width,
            height=height,
            resized=resized,
            byteSize=len(data),
        ),
    )


class ImageAnalysisAdapter:
    """Download, downsize and narrate one subject photo. No retries."""

    provider = IMAGE_PROVIDER
    media_type = MediaType.IMAGE

    def __init__(
        self,
        config: VisionConfig,
        storage: MediaStorage,
        vision_client: BedrockVisionClient,
    ) -> None:
        self._config = config
        self._storage = storage
        self._vision = vision_client
        self.model = vision_client.model_id

    async def analyze(self, record: MediaRecord) -> ImageAnalysisPayload:
        try:
            raw = await self._storage.download_bytes(record.storage_path)
        except StorageError as exc:
            raise ProviderTransportError(str(exc)) from exc

        prepared = await run_in_threadpool(prepare_image, raw, self._config.max_image_edge)
        logger.info(
            "Prepared image media_id=%s original=%sx%s sent=%sx%s",
            record.id,
            prepared.size.originalWidth,
            prepared.size.originalHeight,
            prepared.size.width,
            prepared.size.height,
        )

        try:
            description = await asyncio.wait_for(
                self._vision.describe(
                    prepared.data,
                    system_prompt=IMAGE_SYSTEM_PROMPT,
                    user_prompt=IMAGE_USER_PROMPT,
                ),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(
                f"vision request timed out after {self._config.timeout_seconds:g} seconds"
            ) from exc
        except VisionCredentialsError as exc:
            raise ProviderConfigError("vision provider credentials are not configured") from exc
        except VisionInvocationError as exc:
            raise ProviderTransportError(f"Image analysis failed: {exc}") from exc

        if not description or not description.strip():
            raise MalformedResponseError("Error: empty response")

        return ImageAnalysisPayload(
            model=self.model,
            description=description.strip(),
            sizeMetadata=prepared.size,
        )


__all__ = ["ImageAnalysisAdapter", "PreparedImage", "prepare_image"]
