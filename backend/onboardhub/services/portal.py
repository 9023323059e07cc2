"""Client portal: the aggregated portal view and client-side actions.

Every entry point takes a project already resolved from the portal token
by ``authenticate_portal``. Sub-resources are looked up scoped to that
project, and only whitelisted fields are ever returned.
"""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.exceptions import NotFoundError, UpstreamError, ValidationError
from onboardhub.models.activity import ActorType
from onboardhub.models.document import Document, OnboardingFile, Signature
from onboardhub.models.project import Project, Stage, Task
from onboardhub.services.access_control import get_portal_signature, get_portal_task
from onboardhub.services.activity import ActivityLogger
from onboardhub.services.comments import CommentService
from onboardhub.services.files import FileService
from onboardhub.services.progress import compute_project_progress, compute_stage_progress
from onboardhub.services.signatures import SignatureService, document_names, safe_file_name
from onboardhub.services.storage import BlobStore
from onboardhub.services.tasks import TaskService

logger = structlog.get_logger()

PROJECT_SUMMARY_FIELDS = (
    "id",
    "name",
    "status",
    "community_name",
    "client_company_name",
    "client_contact_name",
    "management_start_date",
)

PORTAL_TASK_FIELDS = (
    "id",
    "title",
    "description",
    "category",
    "status",
    "requires_file_upload",
    "requires_signature",
    "client_notes",
    "order_index",
    "due_date",
    "stage_id",
    "checklist",
)

PORTAL_SIGNATURE_FIELDS = ("id", "status", "signer_name", "document_id", "task_id", "signed_at")

PORTAL_FILE_FIELDS = ("id", "file_name", "task_id", "created_at")

# Statuses from which a client may complete a task
CLIENT_COMPLETABLE_STATUSES = ("pending", "in_progress", "waiting_client")


def _pick(row: Any, fields: tuple[str, ...]) -> dict[str, Any]:
    return {name: getattr(row, name, None) for name in fields}


def portal_task(task: Task) -> dict[str, Any]:
    """Whitelisted view of an external task."""
    data = _pick(task, PORTAL_TASK_FIELDS)
    if data["checklist"] is None:
        data["checklist"] = []
    return data


class PortalViewBuilder:
    """Builds the single response the client portal renders."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def build(self, project: Project) -> dict[str, Any]:
        external_result = await self.db.execute(
            select(Task)
            .where(Task.project_id == project.id, Task.visibility == "external")
            .order_by(Task.order_index)
        )
        external_tasks = external_result.scalars().all()

        signature_result = await self.db.execute(
            select(Signature)
            .where(Signature.project_id == project.id, Signature.status != "declined")
            .order_by(Signature.created_at)
        )
        signatures = signature_result.scalars().all()
        names = await document_names(self.db, (s.document_id for s in signatures))

        file_result = await self.db.execute(
            select(OnboardingFile)
            .where(OnboardingFile.project_id == project.id)
            .order_by(OnboardingFile.created_at.desc())
        )
        files = file_result.scalars().all()

        stage_result = await self.db.execute(
            select(Stage).where(Stage.project_id == project.id).order_by(Stage.order_index)
        )
        stages = stage_result.scalars().all()

        # Stage counts include internal tasks, so read a minimal projection of all of them
        all_result = await self.db.execute(
            select(Task.id, Task.stage_id, Task.status).where(Task.project_id == project.id)
        )
        all_tasks = [row._asdict() for row in all_result.all()]

        progress = compute_project_progress(external_tasks)

        stage_views = []
        for stage in stages:
            counts = compute_stage_progress(stage.id, all_tasks)
            stage_views.append(
                {
                    "id": stage.id,
                    "name": stage.name,
                    "description": stage.description,
                    "order_index": stage.order_index,
                    "status": stage.status,
                    "total_tasks": counts.total,
                    "completed_tasks": counts.completed,
                }
            )

        signature_views = []
        for signature in signatures:
            view = _pick(signature, PORTAL_SIGNATURE_FIELDS)
            view["document_name"] = (
                names.get(signature.document_id) if signature.document_id else None
            )
            signature_views.append(view)

        return {
            "project": _pick(project, PROJECT_SUMMARY_FIELDS),
            "tasks": [portal_task(task) for task in external_tasks],
            "stages": stage_views,
            "progress": progress.percent,
            "completed_tasks": progress.completed,
            "total_tasks": progress.total,
            "signatures": signature_views,
            "files": [_pick(f, PORTAL_FILE_FIELDS) for f in files],
        }


class PortalService:
    """Client actions reachable through a portal token."""

    def __init__(
        self,
        db: AsyncSession,
        activity: ActivityLogger,
        storage: BlobStore | None = None,
    ):
        self.db = db
        self.activity = activity
        self.storage = storage
        self.view_builder = PortalViewBuilder(db)
        self.tasks = TaskService(db, activity)
        self.comments = CommentService(db, activity)
        self.signatures = SignatureService(db, activity)

    async def view(self, project: Project) -> dict[str, Any]:
        return await self.view_builder.build(project)

    # =========================================================================
    # Tasks
    # =========================================================================

    async def update_task(
        self,
        project: Project,
        task_id: UUID,
        status: str | None = None,
        client_notes: str | None = None,
    ) -> dict[str, Any]:
        """
        Complete an external task and/or set its client notes.

        Clients may only move a task to ``completed``, and only from a
        status that is still waiting on someone.
        """
        task = await get_portal_task(self.db, project, task_id)

        changes: dict[str, Any] = {}
        if status is not None:
            if status != "completed":
                raise ValidationError('Clients can only set status to "completed"', field="status")
            if task.status not in CLIENT_COMPLETABLE_STATUSES:
                raise ValidationError(
                    f'Cannot mark task as completed from status "{task.status}"',
                    field="status",
                )
            changes["status"] = "completed"
            changes["completed_by"] = ActorType.CLIENT.value
        if client_notes is not None:
            changes["client_notes"] = client_notes

        if not changes:
            raise ValidationError("No valid updates provided. Allowed: status, client_notes")

        updated = await self.tasks.update_task(
            project.id,
            task.id,
            changes,
            actor=project.client_contact_name or project.name,
            actor_type=ActorType.CLIENT,
        )
        return portal_task(updated)

    # =========================================================================
    # Comments
    # =========================================================================

    async def list_comments(self, project: Project, task_id: UUID):
        await get_portal_task(self.db, project, task_id)
        return await self.comments.list_comments(project.id, task_id, include_internal=False)

    async def add_comment(
        self,
        project: Project,
        task_id: UUID,
        content: str | None,
        author_email: str | None = None,
        author_name: str | None = None,
    ):
        await get_portal_task(self.db, project, task_id)
        return await self.comments.add_comment(
            project.id,
            task_id,
            content,
            author_email=author_email or ActorType.CLIENT.value,
            author_name=author_name or "Client",
            author_type=ActorType.CLIENT,
            is_internal=False,
        )

    # =========================================================================
    # Signatures
    # =========================================================================

    async def list_signatures(self, project: Project) -> list[dict[str, Any]]:
        signatures = await self.signatures.list_signatures(project.id, exclude_declined=True)
        return [
            {
                **{name: s[name] for name in PORTAL_SIGNATURE_FIELDS},
                "document_name": s["document_name"],
            }
            for s in signatures
        ]

    async def sign(
        self,
        project: Project,
        signature_id: UUID,
        data: dict[str, Any],
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict[str, Any]:
        signature = await get_portal_signature(self.db, project, signature_id)
        signed = await self.signatures.sign(project, signature, data, ip_address, user_agent)
        names = await document_names(self.db, [signed.document_id])
        view = _pick(signed, PORTAL_SIGNATURE_FIELDS)
        view["document_name"] = names.get(signed.document_id) if signed.document_id else None
        return view

    async def signature_document(self, project: Project, signature_id: UUID) -> tuple[str, bytes]:
        """
        PDF for a signature of the project: the signed copy when one is stored,
        else the blank document template.

        Raises:
            NotFoundError: signature not in this project, or nothing to serve
        """
        signature = await get_portal_signature(self.db, project, signature_id)
        storage = self._blob_store()

        if signature.signed_pdf_path:
            try:
                data = await storage.download(signature.signed_pdf_path)
                return f"signed-{signature.id}.pdf", data
            except UpstreamError as e:
                logger.warning(
                    "signed_pdf_unavailable",
                    signature_id=str(signature.id),
                    error=e.message,
                )

        document = (
            await self.db.get(Document, signature.document_id) if signature.document_id else None
        )
        if document is None or not document.template_url:
            raise NotFoundError("Document")
        data = await storage.download(document.template_url)
        return f"{safe_file_name(document.name)}.pdf", data

    # =========================================================================
    # Files
    # =========================================================================

    def _blob_store(self) -> BlobStore:
        if self.storage is None:
            raise RuntimeError("PortalService was created without a blob store")
        return self.storage

    def _files(self) -> FileService:
        return FileService(self.db, self._blob_store(), self.activity)

    async def list_files(self, project: Project) -> list[dict[str, Any]]:
        files = await self._files().list_files(project.id)
        return [_pick(f, PORTAL_FILE_FIELDS) for f in files]

    async def upload_file(
        self,
        project: Project,
        file_name: str,
        content_type: str | None,
        data: bytes,
        task_id: UUID | None = None,
        description: str | None = None,
    ) -> dict[str, Any]:
        if task_id is not None:
            await get_portal_task(self.db, project, task_id)
        record = await self._files().upload(
            project.id,
            file_name=file_name,
            content_type=content_type,
            data=data,
            uploaded_by=project.client_contact_name or project.name,
            uploaded_by_type=ActorType.CLIENT,
            task_id=task_id,
            description=description,
        )
        return _pick(record, PORTAL_FILE_FIELDS)
