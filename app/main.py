from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.exception_handlers import register_exception_handlers
from app.api.schemas import HealthOut
from app.consultations.router import router as consultations_router
from app.core.db import close_db, init_db
from app.core.logging import setup_logging
from app.core.metrics import PrometheusMetricsMiddleware, metrics_router
from app.core.middleware.hardening import (
    BodySizeLimitMiddleware,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)
from app.core.middleware.http_logging import HttpLoggingMiddleware
from app.core.secure.provider import build_secure_client_provider
from app.core.settings import get_settings

setup_logging()
logger = logging.getLogger("app.lifecycle")


def create_app() -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            await init_db(app=app, database_url=str(settings.database_url))
        except Exception:
            # Unreachable store is fatal: re-raise so the server refuses to start.
            logger.exception("Database connection failed during startup")
            raise
        logger.info("Database connection successful")

        # The secure client itself connects lazily on first use.
        app.state.secure_client_provider = build_secure_client_provider(
            settings=settings, sessionmaker=app.state.db_sessionmaker
        )
        yield
        await app.state.secure_client_provider.close()
        await close_db(app=app)

    app = FastAPI(
        title="Secure Medical Consultation API",
        description=(
            "Forwards patient questions to a confidential-computing LLM node and keeps "
            "encrypted consultation records.\n\n"
            "Design principles:\n"
            "- Consultation records are encrypted before they leave the process and are only "
            "readable by the user who created them.\n"
            "- Callers receive generic error messages; root causes stay in server logs.\n"
            "- Logging and metrics avoid PHI by using route templates and metadata only."
        ),
        lifespan=lifespan,
        openapi_tags=[
            {
                "name": "health",
                "description": "Basic uptime check for load balancers and monitoring.",
            },
            {
                "name": "consultations",
                "description": "Run medical consultations and read back stored ones.",
            },
            {
                "name": "monitoring",
                "description": "Prometheus-compatible metrics endpoint.",
            },
        ],
    )

    # Last added runs first: logging wraps everything, rate limiting runs before routing.
    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_request_body_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(PrometheusMetricsMiddleware)
    app.add_middleware(HttpLoggingMiddleware)

    register_exception_handlers(app)

    @app.get(
        "/health",
        response_model=HealthOut,
        tags=["health"],
        summary="Health check",
        description=(
            "Lightweight endpoint to verify the API process is running. It does not touch "
            "the database or the confidential LLM node."
        ),
    )
    async def health() -> HealthOut:
        return HealthOut(status="ok")

    app.include_router(metrics_router)
    app.include_router(consultations_router)
    return app


app = create_app()
