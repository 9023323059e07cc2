"""Dashboard statistics and portfolio reports (staff)."""

from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from onboardhub.api.deps import DBSession, StaffCaller
from onboardhub.services.reports import ReportService

router = APIRouter()


# --- Schemas ---


class DashboardStats(BaseModel):
    total_projects: int
    active_projects: int
    completed_projects: int
    avg_completion_days: float | None
    pending_signatures: int
    pending_uploads: int
    overdue_tasks: int
    pending_tasks: int
    avg_completion_percent: int


class ProjectHealth(BaseModel):
    id: UUID
    name: str
    community_name: str | None
    assigned_staff_email: str | None
    progress: int
    total_tasks: int
    completed_tasks: int
    days_active: int
    overdue_count: int
    health: str


class TimelineMonth(BaseModel):
    month: str
    completed: int
    started: int


class StageDistribution(BaseModel):
    stage_name: str
    project_count: int
    avg_progress: int


class PipelineReport(BaseModel):
    by_status: dict[str, int]
    completion_timeline: list[TimelineMonth]
    stage_distribution: list[StageDistribution]


# --- Endpoints ---


@router.get("/stats", response_model=DashboardStats)
async def dashboard_stats(_caller: StaffCaller, db: DBSession):
    """Headline counts for the staff dashboard."""
    return await ReportService(db).dashboard_stats()


@router.get("/reports/health", response_model=list[ProjectHealth])
async def project_health(_caller: StaffCaller, db: DBSession):
    """Active projects labelled healthy, at_risk or critical, worst first."""
    return await ReportService(db).project_health()


@router.get("/reports/pipeline", response_model=PipelineReport)
async def pipeline(_caller: StaffCaller, db: DBSession):
    return await ReportService(db).pipeline()
