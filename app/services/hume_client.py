"""HTTP client for the Hume Expression Measurement batch API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from app.config.settings import HumeConfig

logger = logging.getLogger(__name__)

_API_KEY_HEADER = "X-Hume-Api-Key"

JOB_COMPLETED = "COMPLETED"
JOB_FAILED = "FAILED"


class HumeApiError(RuntimeError):
    """Raised when the Hume API cannot be reached or answers with an error."""

    def __init__(self, message: str, *, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class HumeResponseError(HumeApiError):
    """Raised when Hume returns a body the client cannot interpret."""


@dataclass(frozen=True)
class JobState:
    """Snapshot of a batch job's progress."""

    job_id: str
    status: str
    message: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == JOB_COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == JOB_FAILED


class HumeBatchClient:
    """Submit, inspect and collect Hume batch jobs.

    The client owns an ``httpx.AsyncClient`` unless one is injected, in which
    case the caller is responsible for closing it.
    """

    def __init__(
        self,
        config: HumeConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.request_timeout_seconds),
        )

    @property
    def models(self) -> list[str]:
        return list(self._config.models)

    def _headers(self) -> dict[str, str]:
        api_key = self._config.api_key.get_secret_value() if self._config.api_key else ""
        return {_API_KEY_HEADER: api_key, "Accept": "application/json"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise HumeApiError(f"Hume request {method} {path} failed: {exc}") from exc

        if response.is_error:
            raise HumeApiError(
                f"Hume request {method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text[:2000],
            )

        try:
            return response.json()
        except ValueError as exc:
            raise HumeResponseError(
                f"Hume request {method} {path} returned a non-JSON body",
                status_code=response.status_code,
                body=response.text[:2000],
            ) from exc

    async def submit_job(self, filename: str, data: bytes, content_type: str | None) -> str:
        """Upload a single file as a new batch job and return its id."""

        job_config = {"models": {name: {} for name in self._config.models}}
        body = await self._request(
            "POST",
            "/v0/batch/jobs",
            data={"json": json.dumps(job_config)},
            files={"file": (filename, data, content_type or "application/octet-stream")},
        )
        job_id = body.get("job_id") if isinstance(body, dict) else None
        if not job_id:
            raise HumeResponseError("Hume did not return a job id", body=body)
        logger.info("Submitted Hume batch job %s (%d bytes)", job_id, len(data))
        return str(job_id)

    async def get_job_state(self, job_id: str) -> JobState:
        body = await self._request("GET", f"/v0/batch/jobs/{job_id}")
        state = body.get("state") if isinstance(body, dict) else None
        if not isinstance(state, dict) or not state.get("status"):
            raise HumeResponseError(f"Hume job {job_id} returned no state", body=body)
        return JobState(
            job_id=job_id,
            status=str(state["status"]).upper(),
            message=state.get("message"),
        )

    async def get_predictions(self, job_id: str) -> list[Any]:
        body = await self._request("GET", f"/v0/batch/jobs/{job_id}/predictions")
        if not isinstance(body, list):
            raise HumeResponseError(f"Hume job {job_id} predictions were not a list", body=body)
        return body

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()


__all__ = [
    "HumeApiError",
    "HumeBatchClient",
    "HumeResponseError",
    "JOB_COMPLETED",
    "JOB_FAILED",
    "JobState",
]
