"""Dashboard statistics and portfolio reports for staff."""

from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.models.document import Signature
from onboardhub.models.project import TASK_DONE_STATUSES, Project, Stage, Task
from onboardhub.services.progress import compute_overall_progress, percent_complete
from onboardhub.services.projects import days_since, is_overdue

PROJECT_STATUSES = ("draft", "active", "paused", "completed", "cancelled")

# Signature statuses still waiting on the signer
AWAITING_SIGNATURE_STATUSES = ("pending", "sent")

# Critical first, healthy last
HEALTH_ORDER = {"critical": 0, "at_risk": 1, "healthy": 2}

TIMELINE_MONTHS = 6


def health_status(progress: int, days_active: int, overdue_count: int) -> str:
    """Classify an active project as healthy, at_risk or critical."""
    if overdue_count > 3 or (progress < 25 and days_active > 30):
        return "critical"
    if overdue_count > 0 or (progress < 50 and days_active > 14):
        return "at_risk"
    return "healthy"


def recent_months(today: date, count: int = TIMELINE_MONTHS) -> list[tuple[int, int]]:
    """(year, month) pairs for the last ``count`` months, oldest first, this month last."""
    months = []
    for back in range(count - 1, -1, -1):
        index = today.year * 12 + (today.month - 1) - back
        months.append((index // 12, index % 12 + 1))
    return months


def _in_month(value: datetime | None, year: int, month: int) -> bool:
    return value is not None and value.year == year and value.month == month


class ReportService:
    """Read-only aggregates across all projects."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _tasks_by_project(self) -> dict[UUID, list]:
        result = await self.db.execute(
            select(
                Task.project_id,
                Task.status,
                Task.due_date,
                Task.requires_file_upload,
            )
        )
        grouped: dict[UUID, list] = defaultdict(list)
        for row in result.all():
            grouped[row.project_id].append(row)
        return grouped

    # =========================================================================
    # Dashboard stats
    # =========================================================================

    async def dashboard_stats(self, today: date | None = None) -> dict[str, Any]:
        """Headline numbers for the staff dashboard. Task counts cover active projects only."""
        today = today or date.today()
        projects = (
            await self.db.execute(
                select(Project.id, Project.status, Project.started_at, Project.completed_at)
            )
        ).all()
        pending_signatures = len(
            (
                await self.db.execute(
                    select(Signature.id).where(Signature.status.in_(AWAITING_SIGNATURE_STATUSES))
                )
            ).all()
        )
        tasks_by_project = await self._tasks_by_project()

        active_ids = {p.id for p in projects if p.status == "active"}
        completed = [p for p in projects if p.status == "completed"]

        durations = [
            (p.completed_at - p.started_at).total_seconds() / 86400
            for p in completed
            if p.started_at is not None and p.completed_at is not None
        ]
        avg_completion_days = round(sum(durations) / len(durations), 1) if durations else None

        active_tasks = [t for pid in active_ids for t in tasks_by_project.get(pid, [])]
        pending_uploads = sum(
            1 for t in active_tasks if t.requires_file_upload and t.status not in TASK_DONE_STATUSES
        )
        overdue_tasks = sum(1 for t in active_tasks if is_overdue(t, today))
        pending_tasks = sum(1 for t in active_tasks if t.status == "pending")

        percents = [
            compute_overall_progress(tasks_by_project[pid]).percent
            for pid in active_ids
            if tasks_by_project.get(pid)
        ]
        avg_completion_percent = round(sum(percents) / len(percents)) if percents else 0

        return {
            "total_projects": len(projects),
            "active_projects": len(active_ids),
            "completed_projects": len(completed),
            "avg_completion_days": avg_completion_days,
            "pending_signatures": pending_signatures,
            "pending_uploads": pending_uploads,
            "overdue_tasks": overdue_tasks,
            "pending_tasks": pending_tasks,
            "avg_completion_percent": avg_completion_percent,
        }

    # =========================================================================
    # Health report
    # =========================================================================

    async def project_health(
        self,
        today: date | None = None,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Active projects with progress, overdue count and a health label, worst first."""
        today = today or date.today()
        now = now or datetime.now(timezone.utc)
        projects = (
            await self.db.execute(
                select(Project).where(Project.status == "active").order_by(Project.created_at)
            )
        ).scalars().all()
        tasks_by_project = await self._tasks_by_project()

        report = []
        for project in projects:
            tasks = tasks_by_project.get(project.id, [])
            progress = compute_overall_progress(tasks)
            days_active = days_since(project.started_at or project.created_at, now) or 0
            overdue_count = sum(1 for t in tasks if is_overdue(t, today))
            report.append(
                {
                    "id": project.id,
                    "name": project.name,
                    "community_name": project.community_name,
                    "assigned_staff_email": project.assigned_staff_email,
                    "progress": progress.percent,
                    "total_tasks": progress.total,
                    "completed_tasks": progress.completed,
                    "days_active": days_active,
                    "overdue_count": overdue_count,
                    "health": health_status(progress.percent, days_active, overdue_count),
                }
            )
        report.sort(key=lambda item: HEALTH_ORDER[item["health"]])
        return report

    # =========================================================================
    # Pipeline report
    # =========================================================================

    async def pipeline(self, today: date | None = None) -> dict[str, Any]:
        """Projects by status, a six-month start/completion timeline and stage spread."""
        today = today or date.today()
        projects = (
            await self.db.execute(
                select(
                    Project.id,
                    Project.status,
                    Project.started_at,
                    Project.completed_at,
                    Project.created_at,
                )
            )
        ).all()
        stages = (
            await self.db.execute(
                select(Stage.name, Stage.project_id).where(Stage.project_id.is_not(None))
            )
        ).all()
        tasks_by_project = await self._tasks_by_project()

        by_status = {status: 0 for status in PROJECT_STATUSES}
        for project in projects:
            if project.status in by_status:
                by_status[project.status] += 1

        timeline = []
        for year, month in recent_months(today):
            timeline.append(
                {
                    "month": date(year, month, 1).strftime("%b %Y"),
                    "completed": sum(1 for p in projects if _in_month(p.completed_at, year, month)),
                    "started": sum(
                        1 for p in projects if _in_month(p.started_at or p.created_at, year, month)
                    ),
                }
            )

        projects_by_stage_name: dict[str, set[UUID]] = defaultdict(set)
        for stage in stages:
            projects_by_stage_name[stage.name].add(stage.project_id)

        distribution = []
        for stage_name, project_ids in projects_by_stage_name.items():
            total = 0
            for pid in project_ids:
                tasks = tasks_by_project.get(pid, [])
                completed = sum(1 for t in tasks if t.status == "completed")
                total += percent_complete(completed, len(tasks))
            distribution.append(
                {
                    "stage_name": stage_name,
                    "project_count": len(project_ids),
                    "avg_progress": round(total / len(project_ids)),
                }
            )
        distribution.sort(key=lambda item: item["project_count"], reverse=True)

        return {
            "by_status": by_status,
            "completion_timeline": timeline,
            "stage_distribution": distribution,
        }
