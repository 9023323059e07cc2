"""Health check endpoints."""

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from onboardhub.api.deps import DBSession, SettingsDep

router = APIRouter()


@router.get("/health")
async def health_check(settings: SettingsDep) -> dict[str, str]:
    """Basic health check."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(
    db: DBSession,
    settings: SettingsDep,
) -> dict[str, str | dict[str, str]]:
    """Readiness check including database connectivity."""
    checks: dict[str, str] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except SQLAlchemyError as e:
        checks["database"] = f"unhealthy: {e}"

    overall_status = "healthy" if all(v == "healthy" for v in checks.values()) else "unhealthy"
    return {
        "status": overall_status,
        "version": settings.app_version,
        "checks": checks,
    }
