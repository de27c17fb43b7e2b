"""Thin Bedrock client wrapper for vision model invocations."""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from fastapi.concurrency import run_in_threadpool

from app.config.settings import VisionConfig
from app.services.aws import create_boto3_client

logger = logging.getLogger(__name__)


class VisionInvocationError(RuntimeError):
    """Raised when the Bedrock invocation fails."""


class VisionCredentialsError(VisionInvocationError):
    """Raised when no AWS credentials are available for Bedrock."""


def _decode_bedrock_api_key(secret_value: Optional[str]) -> tuple[str, str] | None:
    """Decode the BEDROCK_API_KEY secret into access/secret key components."""

    if not secret_value:
        return None

    try:
        decoded_bytes = base64.b64decode(secret_value.strip())
    except ValueError:
        decoded_bytes = secret_value.encode("utf-8", "ignore")

    filtered = "".join(chr(b) for b in decoded_bytes if 31 < b < 127)
    if ":" not in filtered:
        return None
    access_key, secret_key = filtered.split(":", 1)
    return access_key, secret_key


class BedrockVisionClient:
    """Invoke a multimodal Bedrock model with one image and one instruction."""

    def __init__(self, config: VisionConfig, client: Any | None = None) -> None:
        self._config = config
        self.model_id = config.model_id

        if client is not None:
            self._client = client
            return

        api_key_tuple = None
        if config.api_key:
            api_key_tuple = _decode_bedrock_api_key(config.api_key.get_secret_value())

        self._client = create_boto3_client(
            "bedrock-runtime",
            region_name=config.region,
            aws_access_key_id=api_key_tuple[0] if api_key_tuple else None,
            aws_secret_access_key=api_key_tuple[1] if api_key_tuple else None,
            read_timeout=config.timeout_seconds,
        )

    async def describe(
        self,
        image_bytes: bytes,
        *,
        system_prompt: str,
        user_prompt: str,
        image_format: str = "jpeg",
    ) -> str:
        """Run a Bedrock ``converse`` call and return the aggregate text output."""

        inference_cfg = {
            "maxTokens": self._config.max_tokens,
            "temperature": self._config.temperature,
        }

        def _call() -> str:
            response = self._client.converse(
                modelId=self.model_id,
                system=[{"text": system_prompt}],
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"image": {"format": image_format, "source": {"bytes": image_bytes}}},
                            {"text": user_prompt},
                        ],
                    }
                ],
                inferenceConfig=inference_cfg,
            )
            content_blocks = (
                response.get("output", {})
                .get("message", {})
                .get("content", [])
            )
            texts = [block.get("text", "") for block in content_blocks if block.get("text")]
            return "\n".join(texts).strip()

        try:
            return await run_in_threadpool(_call)
        except NoCredentialsError as exc:
            raise VisionCredentialsError(str(exc)) from exc
        except (BotoCoreError, ClientError) as exc:
            raise VisionInvocationError(str(exc)) from exc


__all__ = ["BedrockVisionClient", "VisionCredentialsError", "VisionInvocationError"]
