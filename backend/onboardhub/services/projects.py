"""Project lifecycle: creation from templates, listings, CRM summaries and invites."""

import secrets
from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Any, Sequence
from uuid import UUID

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.config import Settings
from onboardhub.exceptions import OnboardingError, UpstreamError, ValidationError
from onboardhub.models.activity import ActivityLog, ActorType
from onboardhub.models.document import SIGNABLE_STATUSES, OnboardingFile, Signature
from onboardhub.models.project import TASK_DONE_STATUSES, Project, ProjectTag, Tag, Task
from onboardhub.services.access_control import get_project_or_404
from onboardhub.services.activity import ActivityLogger
from onboardhub.services.email import Mailer
from onboardhub.services.instantiation import CopyResult, TemplateInstantiationEngine
from onboardhub.services.progress import compute_overall_progress
from onboardhub.services.signatures import document_names

logger = structlog.get_logger()

# Fields accepted when creating or updating a project
PROJECT_FIELDS = {
    "name",
    "template_id",
    "source_deal_id",
    "source_deal_name",
    "client_company_name",
    "client_contact_name",
    "client_contact_email",
    "client_contact_phone",
    "community_name",
    "total_units",
    "management_start_date",
    "status",
    "assigned_staff_email",
    "target_completion_date",
    "notes",
}

ACTIVITY_LIMIT_MAX = 200


def days_since(started_at: datetime | None, now: datetime | None = None) -> int | None:
    if started_at is None:
        return None
    now = now or datetime.now(timezone.utc)
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    return (now - started_at).days


def is_overdue(task: Any, today: date) -> bool:
    return (
        task.due_date is not None
        and task.status not in TASK_DONE_STATUSES
        and task.due_date < today
    )


def next_action(tasks: Sequence[Task], pending_signatures: int, percent: int) -> str | None:
    """The single most useful thing to chase next, for CRM display."""
    if pending_signatures > 0:
        plural = "s" if pending_signatures > 1 else ""
        return f"{pending_signatures} signature{plural} pending"
    pending_external = [t for t in tasks if t.status == "pending" and t.visibility == "external"]
    if pending_external:
        return pending_external[0].title
    if percent < 100:
        internal = [t for t in tasks if t.status != "completed" and t.visibility == "internal"]
        if internal:
            return f"Staff: {internal[0].title}"
    return None


class ProjectService:
    """Service for onboarding projects."""

    def __init__(self, db: AsyncSession, activity: ActivityLogger, settings: Settings):
        self.db = db
        self.activity = activity
        self.settings = settings

    def portal_url(self, project: Project) -> str:
        return f"{self.settings.portal_base_url.rstrip('/')}/p/{project.public_token}"

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_project(
        self,
        data: dict[str, Any],
        actor_type: ActorType = ActorType.STAFF,
        actor: str | None = None,
    ) -> tuple[Project, CopyResult | None]:
        """
        Create a project and, if a template is given, instantiate it.

        A failed instantiation does not fail the creation: the project is
        kept and a ``template_copy_failed`` activity entry records why.

        Returns:
            Tuple of (project, copy result or None)
        """
        if not data.get("name"):
            raise ValidationError("name is required", field="name")
        if actor_type == ActorType.CRM and not data.get("source_deal_id"):
            raise ValidationError("source_deal_id is required", field="source_deal_id")

        fields = {k: v for k, v in data.items() if k in PROJECT_FIELDS and v is not None}
        if "status" not in fields:
            fields["status"] = "active" if actor_type == ActorType.CRM else "draft"
        if fields["status"] == "active":
            fields["started_at"] = datetime.now(timezone.utc)

        project = Project(
            public_token=secrets.token_hex(self.settings.portal_token_bytes),
            **fields,
        )
        self.db.add(project)
        await self.db.commit()
        await self.db.refresh(project)

        project_id = project.id
        template_id = project.template_id
        copy_result = None
        if template_id is not None:
            engine = TemplateInstantiationEngine(self.db)
            try:
                copy_result = await engine.instantiate(
                    template_id, project_id, start_date=project.management_start_date
                )
            except (OnboardingError, SQLAlchemyError) as e:
                await self.db.rollback()
                await self.db.refresh(project)
                logger.error(
                    "template_copy_failed",
                    project_id=str(project_id),
                    template_id=str(template_id),
                    error=str(e),
                )
                self.activity.log(
                    project_id=project_id,
                    action="template_copy_failed",
                    details={"template_id": str(template_id), "error": str(e)},
                )

        self.activity.log(
            project_id=project_id,
            actor=actor or project.assigned_staff_email,
            actor_type=actor_type,
            action="project_created",
            details={
                "name": project.name,
                "template_id": str(template_id) if template_id else None,
                "source_deal_id": project.source_deal_id,
                "tasks_created": copy_result.tasks_created if copy_result else 0,
            },
        )
        logger.info(
            "project_created",
            project_id=str(project_id),
            actor_type=actor_type.value,
            template_id=str(template_id) if template_id else None,
        )
        return project, copy_result

    async def duplicate_project(
        self,
        project_id: UUID,
        name: str | None = None,
        actor: str | None = None,
    ) -> tuple[Project, CopyResult | None]:
        """
        Copy a project's details, stages, tasks and tags into a new draft project.

        The copy gets a fresh portal token. Files, signatures and activity stay
        with the original. As with template instantiation, a failed graph copy
        keeps the new project and records a ``project_copy_failed`` entry.
        """
        source = await get_project_or_404(self.db, project_id)
        fields = {
            key: getattr(source, key)
            for key in PROJECT_FIELDS - {"name", "status"}
        }
        name = (name or "").strip() or f"{source.name} (Copy)"
        source_name = source.name

        project = Project(
            name=name,
            status="draft",
            public_token=secrets.token_hex(self.settings.portal_token_bytes),
            **fields,
        )
        self.db.add(project)
        await self.db.commit()
        await self.db.refresh(project)
        new_id = project.id

        tag_result = await self.db.execute(
            select(ProjectTag.tag_id).where(ProjectTag.project_id == project_id)
        )
        self.db.add_all(
            [ProjectTag(project_id=new_id, tag_id=tag_id) for tag_id in tag_result.scalars().all()]
        )
        await self.db.commit()

        copy_result = None
        try:
            copy_result = await TemplateInstantiationEngine(self.db).copy_project(project_id, new_id)
        except (OnboardingError, SQLAlchemyError) as e:
            await self.db.rollback()
            logger.error(
                "project_copy_failed",
                source_project_id=str(project_id),
                project_id=str(new_id),
                error=str(e),
            )
            self.activity.log(
                project_id=new_id,
                action="project_copy_failed",
                details={"source_project_id": str(project_id), "error": str(e)},
            )
        await self.db.refresh(project)

        self.activity.log(
            project_id=new_id,
            actor=actor,
            actor_type=ActorType.STAFF,
            action="project_duplicated",
            details={
                "source_project_id": str(project_id),
                "source_project_name": source_name,
                "stages_copied": copy_result.stages_created if copy_result else 0,
                "tasks_copied": copy_result.tasks_created if copy_result else 0,
            },
        )
        logger.info("project_duplicated", source_project_id=str(project_id), project_id=str(new_id))
        return project, copy_result

    # =========================================================================
    # Reads
    # =========================================================================

    async def _tags_by_project(self, project_ids: list[UUID]) -> dict[UUID, list[Tag]]:
        if not project_ids:
            return {}
        result = await self.db.execute(
            select(ProjectTag.project_id, Tag)
            .join(Tag, Tag.id == ProjectTag.tag_id)
            .where(ProjectTag.project_id.in_(project_ids))
            .order_by(Tag.name)
        )
        grouped: dict[UUID, list[Tag]] = defaultdict(list)
        for project_id, tag in result.all():
            grouped[project_id].append(tag)
        return grouped

    async def list_projects(
        self,
        status: str | None = None,
        search: str | None = None,
        staff: str | None = None,
        tag_id: UUID | None = None,
        today: date | None = None,
    ) -> list[dict[str, Any]]:
        """Projects newest first, each with task counts, overdue count and tags."""
        today = today or date.today()
        query = select(Project).order_by(Project.created_at.desc())
        if status:
            query = query.where(Project.status == status)
        if staff:
            query = query.where(Project.assigned_staff_email == staff)
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    Project.name.ilike(pattern),
                    Project.community_name.ilike(pattern),
                    Project.client_company_name.ilike(pattern),
                    Project.client_contact_name.ilike(pattern),
                )
            )
        if tag_id is not None:
            query = query.where(
                Project.id.in_(select(ProjectTag.project_id).where(ProjectTag.tag_id == tag_id))
            )
        projects = (await self.db.execute(query)).scalars().all()

        project_ids = [p.id for p in projects]
        tasks_by_project: dict[UUID, list] = defaultdict(list)
        if project_ids:
            task_result = await self.db.execute(
                select(Task.project_id, Task.status, Task.due_date).where(
                    Task.project_id.in_(project_ids)
                )
            )
            for row in task_result.all():
                tasks_by_project[row.project_id].append(row)
        tags = await self._tags_by_project(project_ids)

        listing = []
        for project in projects:
            tasks = tasks_by_project[project.id]
            progress = compute_overall_progress(tasks)
            listing.append(
                {
                    "id": project.id,
                    "name": project.name,
                    "status": project.status,
                    "community_name": project.community_name,
                    "client_contact_name": project.client_contact_name,
                    "assigned_staff_email": project.assigned_staff_email,
                    "progress": progress.percent,
                    "total_tasks": progress.total,
                    "completed_tasks": progress.completed,
                    "overdue_tasks": sum(1 for t in tasks if is_overdue(t, today)),
                    "days_active": days_since(project.started_at),
                    "tags": tags.get(project.id, []),
                    "created_at": project.created_at,
                }
            )
        return listing

    async def get_project_detail(self, project_id: UUID) -> dict[str, Any]:
        """A project row with its tasks and file/signature counts."""
        project = await get_project_or_404(self.db, project_id)
        tasks = (
            await self.db.execute(
                select(Task).where(Task.project_id == project_id).order_by(Task.order_index)
            )
        ).scalars().all()
        files_count = await self.db.scalar(
            select(func.count()).select_from(OnboardingFile).where(OnboardingFile.project_id == project_id)
        )
        signatures_count = await self.db.scalar(
            select(func.count()).select_from(Signature).where(Signature.project_id == project_id)
        )
        progress = compute_overall_progress(tasks)
        return {
            **project.to_dict(),
            "tasks": list(tasks),
            "progress": progress.percent,
            "files_count": files_count or 0,
            "signatures_count": signatures_count or 0,
        }

    async def list_by_deal(self, deal_id: str) -> Sequence[Project]:
        if not deal_id:
            raise ValidationError("deal_id is required", field="deal_id")
        result = await self.db.execute(
            select(Project)
            .where(Project.source_deal_id == deal_id)
            .order_by(Project.created_at.desc())
        )
        return result.scalars().all()

    # =========================================================================
    # Updates
    # =========================================================================

    async def update_project(
        self,
        project_id: UUID,
        changes: dict[str, Any],
        actor: str | None = None,
    ) -> Project:
        project = await get_project_or_404(self.db, project_id)
        fields = {k: v for k, v in changes.items() if k in PROJECT_FIELDS}
        if not fields:
            raise ValidationError("no updatable fields provided")
        if "name" in fields and not fields["name"]:
            raise ValidationError("name cannot be empty", field="name")

        now = datetime.now(timezone.utc)
        if fields.get("status") == "active" and project.started_at is None:
            project.started_at = now
        if fields.get("status") == "completed":
            project.completed_at = now

        for key, value in fields.items():
            setattr(project, key, value)
        await self.db.commit()
        await self.db.refresh(project)

        self.activity.log(
            project_id=project_id,
            actor=actor or project.assigned_staff_email,
            actor_type=ActorType.STAFF,
            action="project_updated",
            details={"updated_fields": sorted(fields), "status": fields.get("status")},
        )
        return project

    async def cancel_project(self, project_id: UUID, actor: str | None = None) -> Project:
        """Soft-delete: the project is kept with status ``cancelled``."""
        project = await get_project_or_404(self.db, project_id)
        previous = project.status
        project.status = "cancelled"
        await self.db.commit()
        await self.db.refresh(project)

        self.activity.log(
            project_id=project_id,
            actor=actor,
            actor_type=ActorType.STAFF,
            action="project_cancelled",
            details={"previous_status": previous},
        )
        return project

    # =========================================================================
    # CRM
    # =========================================================================

    async def crm_summary(self, project_id: UUID) -> dict[str, Any]:
        project = await get_project_or_404(self.db, project_id)
        tasks = (
            await self.db.execute(
                select(Task).where(Task.project_id == project_id).order_by(Task.order_index)
            )
        ).scalars().all()
        signatures = (
            await self.db.execute(
                select(Signature)
                .where(Signature.project_id == project_id)
                .order_by(Signature.created_at)
            )
        ).scalars().all()

        progress = compute_overall_progress(tasks)
        pending_signatures = sum(1 for s in signatures if s.status in SIGNABLE_STATUSES)
        names = await document_names(self.db, (s.document_id for s in signatures))

        return {
            "id": project.id,
            "name": project.name,
            "status": project.status,
            "progress": progress.percent,
            "days_active": days_since(project.started_at),
            "next_action": next_action(tasks, pending_signatures, progress.percent),
            "portal_url": self.portal_url(project),
            "total_tasks": progress.total,
            "completed_tasks": progress.completed,
            "pending_signatures": pending_signatures,
            "signatures": [
                {
                    "id": s.id,
                    "signer_name": s.signer_name,
                    "document_name": names.get(s.document_id) if s.document_id else None,
                    "status": s.status,
                }
                for s in signatures
            ],
        }

    # =========================================================================
    # Client invite
    # =========================================================================

    async def send_invite(self, project_id: UUID, mailer: Mailer) -> dict[str, str]:
        """
        Mail the portal link to the project's client contact.

        Raises:
            ValidationError if the project has no client email
            UpstreamError if the mailer did not accept the message
        """
        project = await get_project_or_404(self.db, project_id)
        if not project.client_contact_email:
            raise ValidationError(
                "Project has no client contact email", field="client_contact_email"
            )

        sent = await mailer.send_invite(
            to=project.client_contact_email,
            client_name=project.client_contact_name or "there",
            project_name=project.name,
            portal_token=project.public_token,
            community_name=project.community_name,
            project_id=project.id,
        )
        if not sent:
            raise UpstreamError("mailer", "Failed to send invite email")

        self.activity.log(
            project_id=project_id,
            actor_type=ActorType.STAFF,
            action="invite_sent",
            details={"email_id": sent["id"], "to": project.client_contact_email},
        )
        return sent

    # =========================================================================
    # Activity feed
    # =========================================================================

    async def list_activity(self, project_id: UUID, limit: int = 50) -> Sequence[ActivityLog]:
        await get_project_or_404(self.db, project_id)
        limit = max(1, min(limit, ACTIVITY_LIMIT_MAX))
        result = await self.db.execute(
            select(ActivityLog)
            .where(ActivityLog.project_id == project_id)
            .order_by(ActivityLog.created_at.desc())
            .limit(limit)
        )
        return result.scalars().all()
