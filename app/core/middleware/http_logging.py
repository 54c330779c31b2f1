"""HTTP access logging.

- Metadata only: no bodies, no query strings, no headers.
- X-Request-ID is propagated when safe, generated otherwise, and echoed back.
- The authenticated user id (set on `request.state` by the auth dependency) is
  attached so security events can be correlated with requests.
"""

from __future__ import annotations

import logging
import re
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from app.core.middleware.routes import safe_route_label

logger = logging.getLogger("app.http")

REQUEST_ID_HEADER = "X-Request-ID"
_SAFE_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def get_or_create_request_id(*, request: Request) -> str:
    """Accept a caller's request id only if it is short and log-safe."""

    candidate = request.headers.get(REQUEST_ID_HEADER)
    if candidate and _SAFE_REQUEST_ID_PATTERN.fullmatch(candidate):
        return candidate
    return uuid.uuid4().hex


def request_id_of(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or request.headers.get(REQUEST_ID_HEADER)


class HttpLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = get_or_create_request_id(request=request)
        started = time.perf_counter()
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception:  # noqa: BLE001 - log with stack trace, then let Starlette answer 500
            logger.exception(
                "Unhandled exception while processing request",
                extra=self._metadata(request, request_id, started, status_code=500),
            )
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "Request completed",
            extra=self._metadata(request, request_id, started, status_code=response.status_code),
        )
        return response

    @staticmethod
    def _metadata(
        request: Request, request_id: str, started: float, *, status_code: int
    ) -> dict[str, object]:
        return {
            "request_id": request_id,
            "http_method": request.method,
            "request_path": safe_route_label(request=request),
            "status_code": status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
            "user_id": getattr(request.state, "user_id", None),
        }
