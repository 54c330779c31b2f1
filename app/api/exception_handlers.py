from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.middleware.http_logging import request_id_of
from app.core.middleware.routes import safe_route_label
from app.domain.exceptions import (
    BusinessValidationError,
    ConsultationAccessDeniedError,
    ConsultationError,
    ConsultationNotFoundError,
    ConsultationProcessingError,
    ConsultationRetrievalError,
    ConsultationStorageError,
)

logger = logging.getLogger("app.errors")

# A foreign record and a missing one must look the same to callers.
CONSULTATION_NOT_FOUND = "Consultation not found"


def _status_and_detail(exc: ConsultationError) -> tuple[int, str]:
    if isinstance(exc, (ConsultationNotFoundError, ConsultationAccessDeniedError)):
        return 404, CONSULTATION_NOT_FOUND
    if isinstance(exc, (ConsultationProcessingError, ConsultationRetrievalError)):
        return 502, exc.message
    if isinstance(exc, ConsultationStorageError):
        return 500, exc.message
    return 500, ConsultationError.message


def _log_metadata(request: Request, *, status_code: int, error: str) -> dict[str, object]:
    # IMPORTANT: no request bodies, query values, or any PHI.
    return {
        "request_id": request_id_of(request),
        "http_method": request.method,
        "request_path": safe_route_label(request=request),
        "status_code": status_code,
        "user_id": getattr(request.state, "user_id", None),
        "error": error,
    }


def register_exception_handlers(app: FastAPI) -> None:
    """Register application exception handlers."""

    @app.exception_handler(BusinessValidationError)
    async def handle_business_validation_error(
        request: Request,
        exc: BusinessValidationError,
    ) -> JSONResponse:
        logger.info(
            "Business validation failed",
            extra=_log_metadata(request, status_code=400, error="business_validation"),
        )
        return JSONResponse(status_code=400, content={"detail": exc.message})

    @app.exception_handler(ConsultationError)
    async def handle_consultation_error(
        request: Request,
        exc: ConsultationError,
    ) -> JSONResponse:
        status_code, detail = _status_and_detail(exc)
        logger.info(
            "Consultation request failed",
            extra=_log_metadata(request, status_code=status_code, error=type(exc).__name__),
        )
        return JSONResponse(status_code=status_code, content={"detail": detail})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request,
        exc: StarletteHTTPException,
    ) -> JSONResponse:
        if exc.status_code == 404 and request.scope.get("route") is None:
            return JSONResponse(
                status_code=404,
                content={
                    "status": "error",
                    "message": f"Can't find {request.url.path} on this server!",
                },
            )
        return await http_exception_handler(request, exc)
