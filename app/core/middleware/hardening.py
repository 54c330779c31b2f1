"""Edge hardening: security headers, request size cap and per-client rate limiting."""

from __future__ import annotations

import math
import time
from collections.abc import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import ClientDisconnect
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-DNS-Prefetch-Control": "off",
    "X-Permitted-Cross-Domain-Policies": "none",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for name, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        # Consultation payloads must not be cached by intermediaries.
        if request.url.path.startswith("/api"):
            response.headers.setdefault("Cache-Control", "no-store")
        return response


_BODY_TOO_LARGE = "Request body too large"


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "message": message})


class BodySizeLimitMiddleware:
    """
    Cap request bodies at `max_bytes` (413).

    A declared Content-Length is checked up front. Received bytes are counted as well,
    so chunked bodies without a Content-Length are capped too.
    """

    def __init__(self, app: ASGIApp, *, max_bytes: int):
        self.app = app
        self._max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared is not None:
            try:
                too_large = int(declared) > self._max_bytes
            except ValueError:
                await _error_response(400, "Invalid Content-Length header")(scope, receive, send)
                return
            if too_large:
                await _error_response(413, _BODY_TOO_LARGE)(scope, receive, send)
                return

        received = 0
        response_started = False
        rejected = False

        async def limited_receive() -> Message:
            nonlocal received, rejected
            if rejected:
                return {"type": "http.disconnect"}
            message = await receive()
            if message["type"] != "http.request":
                return message
            received += len(message.get("body", b""))
            if received <= self._max_bytes:
                return message
            if not response_started:
                rejected = True
                await _error_response(413, _BODY_TOO_LARGE)(scope, receive, send)
            # The app sees a disconnected client and never gets the oversized body.
            return {"type": "http.disconnect"}

        async def guarded_send(message: Message) -> None:
            nonlocal response_started
            if rejected:
                return
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, guarded_send)
        except ClientDisconnect:
            if not rejected:
                raise


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed-window request limit per client address on paths under `path_prefix`.

    State is process-local; behind several workers each worker enforces its own window.
    Responses carry `RateLimit-Limit`, `RateLimit-Remaining` and `RateLimit-Reset`.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        max_requests: int,
        window_seconds: int,
        path_prefix: str = "/api",
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(app)
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._path_prefix = path_prefix
        self._clock = clock
        # client -> (window_started_at, count)
        self._windows: dict[str, tuple[float, int]] = {}

    def _client_key(self, request: Request) -> str:
        return request.client.host if request.client else "unknown"

    def _prune(self, now: float) -> None:
        expired = [
            key
            for key, (started, _) in self._windows.items()
            if now - started >= self._window_seconds
        ]
        for key in expired:
            del self._windows[key]

    def _hit(self, key: str) -> tuple[int, float]:
        """Count one request; return (count in window, seconds until reset)."""

        now = self._clock()
        self._prune(now)
        started, count = self._windows.get(key, (now, 0))
        count += 1
        self._windows[key] = (started, count)
        return count, max(self._window_seconds - (now - started), 0.0)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not request.url.path.startswith(self._path_prefix):
            return await call_next(request)

        count, reset_in = self._hit(self._client_key(request))
        headers = {
            "RateLimit-Limit": str(self._max_requests),
            "RateLimit-Remaining": str(max(self._max_requests - count, 0)),
            "RateLimit-Reset": str(math.ceil(reset_in)),
        }

        if count > self._max_requests:
            minutes = max(math.ceil(self._window_seconds / 60), 1)
            headers["Retry-After"] = str(math.ceil(reset_in))
            return JSONResponse(
                status_code=429,
                content={
                    "status": "error",
                    "message": (
                        "Too many requests from this IP, please try again after "
                        f"{minutes} minutes"
                    ),
                },
                headers=headers,
            )

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response
