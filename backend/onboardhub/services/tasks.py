"""Task mutation service: single and bulk updates, deletes and reordering.

Every mutation records an activity entry through the fire-and-forget
ActivityLogger. Bulk operations touch each task independently; one bad id
never stops the rest of the batch.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence
from uuid import UUID

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.exceptions import ValidationError
from onboardhub.models.activity import ActorType
from onboardhub.models.project import Task
from onboardhub.services.access_control import get_project_task
from onboardhub.services.activity import ActivityLogger
from onboardhub.services.stages import StageService

logger = structlog.get_logger()

# Fields a staff caller may set on a task
TASK_FIELDS = {
    "title",
    "description",
    "order_index",
    "visibility",
    "assignee_type",
    "assignee_email",
    "category",
    "requires_file_upload",
    "requires_signature",
    "status",
    "completed_by",
    "depends_on",
    "stage_id",
    "due_date",
    "staff_notes",
    "client_notes",
    "checklist",
}

SYSTEM_ACTOR = ActorType.SYSTEM.value


@dataclass
class BulkResult:
    """Aggregate outcome of a bulk operation."""

    requested: int
    succeeded: int
    failed: list[UUID]


def completion_actor(
    explicit: str | None = None,
    assignee_email: str | None = None,
) -> str:
    """Who completed a task: the explicit actor, else the assignee, else system."""
    return explicit or assignee_email or SYSTEM_ACTOR


class TaskService:
    """Service for creating and mutating project tasks."""

    def __init__(self, db: AsyncSession, activity: ActivityLogger):
        self.db = db
        self.activity = activity
        self.stages = StageService(db)

    # =========================================================================
    # Reads / creation
    # =========================================================================

    async def list_tasks(self, project_id: UUID) -> Sequence[Task]:
        result = await self.db.execute(
            select(Task).where(Task.project_id == project_id).order_by(Task.order_index)
        )
        return result.scalars().all()

    async def _check_references(self, project_id: UUID, fields: dict[str, Any]) -> None:
        """stage_id and depends_on must stay inside the project."""
        if fields.get("stage_id") is not None:
            await self.stages.get_stage(project_id, fields["stage_id"])
        if fields.get("depends_on") is not None:
            await get_project_task(self.db, project_id, fields["depends_on"])

    async def create_task(
        self,
        project_id: UUID,
        data: dict[str, Any],
        actor: str | None = None,
    ) -> Task:
        if not data.get("title"):
            raise ValidationError("title is required", field="title")
        fields = {k: v for k, v in data.items() if k in TASK_FIELDS and k != "completed_by"}
        await self._check_references(project_id, fields)

        if "order_index" not in fields:
            max_result = await self.db.execute(
                select(func.max(Task.order_index)).where(Task.project_id == project_id)
            )
            max_index = max_result.scalar()
            fields["order_index"] = 0 if max_index is None else max_index + 1

        fields.setdefault("checklist", [])
        task = Task(project_id=project_id, **fields)
        if task.status == "completed":
            task.completed_at = datetime.now(timezone.utc)
            task.completed_by = completion_actor(actor, task.assignee_email)
        self.db.add(task)
        await self.db.commit()
        await self.db.refresh(task)

        self.activity.log(
            project_id=project_id,
            task_id=task.id,
            actor=actor,
            actor_type=ActorType.STAFF,
            action="task_created",
            details={"title": task.title},
        )
        return task

    # =========================================================================
    # Single update / delete
    # =========================================================================

    async def update_task(
        self,
        project_id: UUID,
        task_id: UUID,
        changes: dict[str, Any],
        actor: str | None = None,
        actor_type: ActorType = ActorType.STAFF,
    ) -> Task:
        """
        Apply only the provided fields to a task.

        Setting status to ``completed`` stamps ``completed_at`` with the
        current time and ``completed_by`` with the explicit actor, else the
        assignee email, else ``system``. Any other status is stored as given.
        """
        task = await get_project_task(self.db, project_id, task_id)
        fields = {k: v for k, v in changes.items() if k in TASK_FIELDS}
        if not fields:
            raise ValidationError("no updatable fields provided")
        await self._check_references(project_id, fields)

        completing = fields.get("status") == "completed"
        if completing:
            fields["completed_at"] = datetime.now(timezone.utc)
            fields["completed_by"] = completion_actor(
                fields.get("completed_by") or actor,
                fields.get("assignee_email") or task.assignee_email,
            )
        else:
            # completed_by only changes together with a completed status
            fields.pop("completed_by", None)
            if not fields:
                raise ValidationError("completed_by can only be set when completing a task")

        for key, value in fields.items():
            setattr(task, key, value)
        await self.db.commit()
        await self.db.refresh(task)

        action = "task_completed" if completing else "task_updated"
        self.activity.log(
            project_id=project_id,
            task_id=task_id,
            actor=fields.get("completed_by") or actor or task.assignee_email,
            actor_type=actor_type,
            action=action,
            details={
                "updated_fields": sorted(changes.keys()),
                "title": task.title,
                "status": fields.get("status"),
            },
        )
        logger.info("task_updated", project_id=str(project_id), task_id=str(task_id), action=action)

        if completing:
            await self.stages.advance_if_done(project_id, task.stage_id)
        return task

    async def delete_task(self, project_id: UUID, task_id: UUID, actor: str | None = None) -> None:
        task = await get_project_task(self.db, project_id, task_id)
        title = task.title
        await self.db.execute(
            delete(Task).where(Task.id == task_id, Task.project_id == project_id)
        )
        await self.db.commit()

        self.activity.log(
            project_id=project_id,
            task_id=task_id,
            actor=actor,
            actor_type=ActorType.STAFF,
            action="task_deleted",
            details={"title": title},
        )
        logger.info("task_deleted", project_id=str(project_id), task_id=str(task_id))

    # =========================================================================
    # Bulk operations
    # =========================================================================

    async def bulk_complete(
        self,
        project_id: UUID,
        task_ids: list[UUID],
        actor: str | None = None,
    ) -> BulkResult:
        """
        Mark each task completed. Ids outside the project are skipped.

        ``completed_by`` follows the single-update rule per task: the
        explicit actor, else that task's assignee email, else ``system``.
        """
        result = await self.db.execute(
            select(Task.id, Task.assignee_email, Task.stage_id).where(
                Task.id.in_(task_ids),
                Task.project_id == project_id,
            )
        )
        rows = {row.id: row for row in result.all()}

        succeeded = 0
        failed: list[UUID] = []
        touched_stages: set[UUID] = set()

        for task_id in task_ids:
            row = rows.get(task_id)
            if row is None:
                continue
            completed_by = completion_actor(actor, row.assignee_email)
            try:
                await self.db.execute(
                    update(Task)
                    .where(Task.id == task_id, Task.project_id == project_id)
                    .values(
                        status="completed",
                        completed_at=datetime.now(timezone.utc),
                        completed_by=completed_by,
                    )
                )
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                failed.append(task_id)
                logger.error(
                    "bulk_complete_item_failed",
                    project_id=str(project_id),
                    task_id=str(task_id),
                    error=str(e),
                )
                continue

            succeeded += 1
            self.activity.log(
                project_id=project_id,
                task_id=task_id,
                actor=completed_by,
                actor_type=ActorType.STAFF,
                action="task_completed",
                details={"bulk_operation": True},
            )

            if row.stage_id is not None:
                touched_stages.add(row.stage_id)

        for stage_id in touched_stages:
            await self.stages.advance_if_done(project_id, stage_id)

        logger.info(
            "tasks_bulk_completed",
            project_id=str(project_id),
            requested=len(task_ids),
            completed=succeeded,
        )
        return BulkResult(requested=len(task_ids), succeeded=succeeded, failed=failed)

    async def bulk_delete(
        self,
        project_id: UUID,
        task_ids: list[UUID],
        actor: str | None = None,
    ) -> BulkResult:
        """Delete each task that exists in the project; unknown ids are skipped."""
        # Titles are read first so activity entries stay readable after the rows are gone
        result = await self.db.execute(
            select(Task.id, Task.title).where(
                Task.id.in_(task_ids),
                Task.project_id == project_id,
            )
        )
        titles = {row.id: row.title for row in result.all()}

        succeeded = 0
        failed: list[UUID] = []
        for task_id, title in titles.items():
            try:
                await self.db.execute(
                    delete(Task).where(Task.id == task_id, Task.project_id == project_id)
                )
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                failed.append(task_id)
                logger.error(
                    "bulk_delete_item_failed",
                    project_id=str(project_id),
                    task_id=str(task_id),
                    error=str(e),
                )
                continue

            succeeded += 1
            self.activity.log(
                project_id=project_id,
                task_id=task_id,
                actor=actor,
                actor_type=ActorType.STAFF,
                action="task_deleted",
                details={"title": title, "bulk_operation": True},
            )

        logger.info(
            "tasks_bulk_deleted",
            project_id=str(project_id),
            requested=len(task_ids),
            deleted=succeeded,
        )
        return BulkResult(requested=len(task_ids), succeeded=succeeded, failed=failed)

    async def reorder(self, project_id: UUID, entries: list[dict[str, Any]]) -> int:
        """
        Apply {id, order_index} pairs within one project.

        Entries missing an id or a numeric order_index are skipped without error.

        Returns:
            Number of tasks whose order_index was written
        """
        updated = 0
        for entry in entries:
            task_id = entry.get("id")
            order_index = entry.get("order_index")
            if not task_id or isinstance(order_index, bool) or not isinstance(order_index, int):
                continue
            result = await self.db.execute(
                update(Task)
                .where(Task.id == task_id, Task.project_id == project_id)
                .values(order_index=order_index)
            )
            updated += result.rowcount
        await self.db.commit()

        if updated:
            self.activity.log(
                project_id=project_id,
                actor_type=ActorType.STAFF,
                action="tasks_reordered",
                details={"count": updated},
            )
        return updated
