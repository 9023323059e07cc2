"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from onboardhub.api import router as api_router
from onboardhub.config import get_settings
from onboardhub.db.session import async_session_factory, close_db, init_db
from onboardhub.exceptions import OnboardingError
from onboardhub.middleware.logging import LoggingMiddleware
from onboardhub.middleware.request_id import RequestIDMiddleware
from onboardhub.services.activity import ActivityLogger

logger = structlog.get_logger()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    logger.info("app_starting", version=settings.app_version, environment=settings.environment)
    await init_db()

    yield

    # Let queued activity writes finish before the pool goes away
    await app.state.activity.drain()
    await close_db()
    logger.info("app_stopped")


async def onboarding_error_handler(request: Request, exc: OnboardingError) -> ORJSONResponse:
    """Translate service errors into ``{"detail", "code"}`` responses."""
    if exc.status_code >= 500:
        logger.error("request_upstream_failure", code=exc.code, error=exc.message)
    return ORJSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Client onboarding projects, templates and the tokenized client portal",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.activity = ActivityLogger(async_session_factory)

    # Add middleware (order matters - last added is first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    # Trust proxy headers (X-Forwarded-Proto, X-Forwarded-For)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

    app.add_exception_handler(OnboardingError, onboarding_error_handler)
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint for load balancers."""
        return {"status": "healthy", "version": settings.app_version}

    return app


app = create_app()
