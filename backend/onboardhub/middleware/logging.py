"""Structured request logging."""

import re
import time
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()

# Portal paths embed the client's credential
_PORTAL_TOKEN = re.compile(r"(/portal/)[^/]+")


def redact_path(path: str) -> str:
    """Replace the portal token segment of a path with a placeholder."""
    return _PORTAL_TOKEN.sub(r"\1<token>", path)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request with its id, outcome and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=getattr(request.state, "request_id", "unknown"),
            method=request.method,
            path=redact_path(request.url.path),
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception(
                "request_failed",
                error=str(exc),
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        log = logger.warning if response.status_code >= 500 else logger.info
        log("request_completed", status_code=response.status_code, duration_ms=duration_ms)
        response.headers["X-Process-Time"] = str(duration_ms)
        return response
