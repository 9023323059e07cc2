"""Middleware package."""

from onboardhub.middleware.logging import LoggingMiddleware
from onboardhub.middleware.request_id import RequestIDMiddleware

__all__ = ["LoggingMiddleware", "RequestIDMiddleware"]
