"""Due-date reminders for clients with pending portal tasks."""

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.config import Settings
from onboardhub.models.project import Project, Task
from onboardhub.services.email import Mailer

logger = structlog.get_logger()


@dataclass
class ReminderResult:
    """Outcome of the reminder for one project."""

    project_id: UUID
    project_name: str
    client_email: str
    task_count: int
    sent: bool
    email_id: str | None = None


@dataclass
class ReminderSummary:
    """Outcome of one reminder run."""

    total_projects: int
    attempted: int = 0
    sent: int = 0
    results: list[ReminderResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ReminderService:
    """Selects projects with pending client tasks due soon and mails each client once."""

    def __init__(self, db: AsyncSession, mailer: Mailer, settings: Settings):
        self.db = db
        self.mailer = mailer
        self.window_days = settings.reminder_window_days

    async def _active_projects(self) -> list[Project]:
        result = await self.db.execute(
            select(Project)
            .where(Project.status == "active", Project.client_contact_email.is_not(None))
            .order_by(Project.created_at)
        )
        return list(result.scalars().all())

    async def due_tasks_by_project(
        self,
        project_ids: list[UUID],
        cutoff: date,
    ) -> dict[UUID, list[Task]]:
        """Pending external tasks due on or before ``cutoff``, overdue included."""
        if not project_ids:
            return {}
        result = await self.db.execute(
            select(Task)
            .where(
                Task.project_id.in_(project_ids),
                Task.visibility == "external",
                Task.status == "pending",
                Task.due_date.is_not(None),
                Task.due_date <= cutoff,
            )
            .order_by(Task.due_date, Task.order_index)
        )
        grouped: dict[UUID, list[Task]] = defaultdict(list)
        for task in result.scalars().all():
            grouped[task.project_id].append(task)
        return grouped

    async def send_reminders(self, today: date | None = None) -> ReminderSummary:
        """
        Send one reminder per project that has tasks due within the window.

        Args:
            today: Reference date, defaults to the current date

        Returns:
            ReminderSummary with per-project results. Projects with nothing due
            are scanned but not reported.
        """
        today = today or date.today()
        cutoff = today + timedelta(days=self.window_days)

        projects = await self._active_projects()
        summary = ReminderSummary(total_projects=len(projects))
        if not projects:
            logger.info("reminders_no_active_projects")
            return summary

        grouped = await self.due_tasks_by_project([p.id for p in projects], cutoff)

        for project in projects:
            tasks = grouped.get(project.id)
            if not tasks:
                continue

            summary.attempted += 1
            response = await self.mailer.send_reminder(
                to=project.client_contact_email,
                client_name=project.client_contact_name or "there",
                project_name=project.name,
                pending_tasks=[{"title": t.title, "due_date": t.due_date} for t in tasks],
                portal_token=project.public_token,
                project_id=project.id,
            )
            email_id = response.get("id") if response else None
            if email_id:
                summary.sent += 1

            summary.results.append(
                ReminderResult(
                    project_id=project.id,
                    project_name=project.name,
                    client_email=project.client_contact_email,
                    task_count=len(tasks),
                    sent=bool(email_id),
                    email_id=email_id,
                )
            )

        logger.info(
            "reminders_sent",
            cutoff=cutoff.isoformat(),
            total_projects=summary.total_projects,
            attempted=summary.attempted,
            sent=summary.sent,
        )
        return summary
