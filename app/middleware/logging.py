"""Structured request logging.

Each request produces one line on the ``app.middleware.structured`` logger:
coloured ``key=value`` pairs normally, compact JSON when ``DEBUG`` is on.
Requests against a single media record also carry its ``media_id`` so they
can be matched with the analysis pipeline log.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Optional

from cryptography.fernet import Fernet
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from app.config.settings import settings
from app.utils import AuthenticationError, decode_access_token

logger = logging.getLogger("app.middleware.structured")

COLOR_RESET = "\u001b[0m"
COLOR_GREEN = "\u001b[32m"
COLOR_CYAN = "\u001b[36m"
COLOR_YELLOW = "\u001b[33m"
COLOR_RED = "\u001b[31m"

_CONSOLE_FIELDS = ("method", "route", "status_code", "duration_ms", "media_id", "user_id", "client_ip")


@dataclass(slots=True)
class CallerContext:
    """Who made the request, as far as the bearer token says."""

    user_id: str
    sealed: str


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one structured log line for each HTTP request."""

    _cipher: ClassVar[Optional[Fernet]] = None

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        started = time.perf_counter()
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }

        caller = self._caller_context(request)
        if caller is not None:
            entry["user_id"] = caller.user_id
            entry["caller"] = caller.sealed

        try:
            response = await call_next(request)
        except Exception as exc:
            self._finish(entry, request, 500, started)
            entry["error"] = repr(exc)
            logger.exception(self._render(entry))
            raise

        self._finish(entry, request, response.status_code, started)
        logger.info(self._render(entry))
        return response

    @staticmethod
    def _finish(entry: dict[str, Any], request: Request, status_code: int, started: float) -> None:
        """Fill in the fields only known once routing and the handler have run."""

        route = request.scope.get("route")
        entry["route"] = getattr(route, "path", None) or request.url.path
        media_id = request.scope.get("path_params", {}).get("media_id")
        if media_id is not None:
            entry["media_id"] = str(media_id)
        entry["status_code"] = status_code
        entry["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)

    def _caller_context(self, request: Request) -> CallerContext | None:
        token = self._bearer_token(request)
        if not token:
            return None

        try:
            payload = decode_access_token(token)
        except AuthenticationError:
            logger.debug("Unverifiable bearer token on %s", request.url.path)
            return None

        issued_at = payload.iat or datetime.now(timezone.utc)
        fingerprint = hashlib.sha256(
            f"{payload.sub}:{int(issued_at.timestamp())}".encode("utf-8")
        ).hexdigest()
        sealed = {
            "session": fingerprint,
            "user_id": payload.sub,
            "email": payload.email,
            "expires_at": payload.exp.isoformat(),
        }
        user_agent = request.headers.get("user-agent")
        if user_agent:
            sealed["user_agent"] = user_agent[:256]

        return CallerContext(user_id=payload.sub, sealed=self._seal(sealed))

    @classmethod
    def _seal(cls, metadata: dict[str, Any]) -> str:
        """Encrypt caller metadata so emails never reach the log in clear text."""

        if cls._cipher is None:
            secret = settings.security.jwt_secret_key.get_secret_value().encode("utf-8")
            cls._cipher = Fernet(base64.urlsafe_b64encode(hashlib.sha256(secret).digest()))
        raw = json.dumps(metadata, default=str, separators=(",", ":")).encode("utf-8")
        return cls._cipher.encrypt(raw).decode("utf-8")

    @staticmethod
    def _bearer_token(request: Request) -> Optional[str]:
        scheme, _, token = request.headers.get("authorization", "").partition(" ")
        if scheme.lower() != "bearer" or not token:
            return None
        return token

    @staticmethod
    def _render(entry: dict[str, Any]) -> str:
        if settings.debug:
            return json.dumps(entry, default=str, separators=(",", ":"))

        status = entry.get("status_code") or 0
        if 200 <= status < 300:
            color = COLOR_GREEN
        elif 400 <= status < 500:
            color = COLOR_YELLOW
        elif status >= 500:
            color = COLOR_RED
        else:
            color = COLOR_CYAN

        message = ", ".join(
            f"{name}={entry[name] if entry.get(name) is not None else '-'}"
            for name in _CONSOLE_FIELDS
        )
        return f"{color}{message}{COLOR_RESET}"
