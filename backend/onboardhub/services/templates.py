"""Template service: blueprint CRUD for templates, their stages and tasks."""

from typing import Any, Sequence
from uuid import UUID

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.exceptions import NotFoundError, ValidationError
from onboardhub.models.project import Stage
from onboardhub.models.template import Template, TemplateTask

logger = structlog.get_logger()

TEMPLATE_FIELDS = {"name", "description", "estimated_days", "is_active"}
TEMPLATE_TASK_FIELDS = {
    "title",
    "description",
    "order_index",
    "visibility",
    "assignee_type",
    "category",
    "requires_file_upload",
    "requires_signature",
    "depends_on",
    "stage_id",
    "due_days_offset",
}
STAGE_FIELDS = {"name", "description", "order_index", "status"}


class TemplateService:
    """Service for managing templates and their stage/task definitions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Templates
    # =========================================================================

    async def list_templates(self, active_only: bool = False) -> Sequence[Template]:
        query = select(Template)
        if active_only:
            query = query.where(Template.is_active == True)  # noqa: E712
        result = await self.db.execute(query.order_by(Template.created_at.desc()))
        return result.scalars().all()

    async def get_template(self, template_id: UUID) -> Template:
        result = await self.db.execute(select(Template).where(Template.id == template_id))
        template = result.scalar_one_or_none()
        if template is None:
            raise NotFoundError("Template")
        return template

    async def create_template(
        self,
        name: str,
        description: str | None = None,
        estimated_days: int | None = None,
        created_by: str | None = None,
        tasks: list[dict[str, Any]] | None = None,
    ) -> tuple[Template, list[TemplateTask]]:
        """Create a template, optionally with embedded task definitions."""
        if not name or not name.strip():
            raise ValidationError("name is required", field="name")

        template = Template(
            name=name.strip(),
            description=description,
            estimated_days=estimated_days,
            created_by=created_by,
            is_active=True,
        )
        self.db.add(template)
        await self.db.flush()

        created_tasks = []
        for idx, data in enumerate(tasks or []):
            if not data.get("title"):
                raise ValidationError("every task needs a title", field="tasks")
            # Embedded tasks cannot reference rows that do not exist yet
            fields = {
                k: v for k, v in data.items()
                if k in TEMPLATE_TASK_FIELDS and k not in ("depends_on", "stage_id")
            }
            fields.setdefault("order_index", idx)
            created_tasks.append(TemplateTask(template_id=template.id, **fields))
        self.db.add_all(created_tasks)

        await self.db.commit()
        await self.db.refresh(template)

        logger.info(
            "template_created",
            template_id=str(template.id),
            task_count=len(created_tasks),
        )
        return template, created_tasks

    async def update_template(self, template_id: UUID, changes: dict[str, Any]) -> Template:
        template = await self.get_template(template_id)
        for key, value in changes.items():
            if key in TEMPLATE_FIELDS:
                setattr(template, key, value)
        await self.db.commit()
        await self.db.refresh(template)
        logger.info("template_updated", template_id=str(template_id))
        return template

    async def delete_template(self, template_id: UUID) -> None:
        await self.get_template(template_id)
        # Stages and tasks are owned by the template
        await self.db.execute(delete(TemplateTask).where(TemplateTask.template_id == template_id))
        await self.db.execute(delete(Stage).where(Stage.template_id == template_id))
        await self.db.execute(delete(Template).where(Template.id == template_id))
        await self.db.commit()
        logger.info("template_deleted", template_id=str(template_id))

    # =========================================================================
    # Template tasks
    # =========================================================================

    async def list_tasks(self, template_id: UUID) -> Sequence[TemplateTask]:
        result = await self.db.execute(
            select(TemplateTask)
            .where(TemplateTask.template_id == template_id)
            .order_by(TemplateTask.order_index)
        )
        return result.scalars().all()

    async def _get_task(self, template_id: UUID, task_id: UUID) -> TemplateTask:
        result = await self.db.execute(
            select(TemplateTask).where(
                TemplateTask.id == task_id,
                TemplateTask.template_id == template_id,
            )
        )
        task = result.scalar_one_or_none()
        if task is None:
            raise NotFoundError("Template task")
        return task

    async def _check_references(self, template_id: UUID, fields: dict[str, Any]) -> None:
        """stage_id and depends_on must point inside the same template."""
        if fields.get("stage_id") is not None:
            await self._get_stage(template_id, fields["stage_id"])
        if fields.get("depends_on") is not None:
            await self._get_task(template_id, fields["depends_on"])

    async def add_task(self, template_id: UUID, data: dict[str, Any]) -> TemplateTask:
        await self.get_template(template_id)
        if not data.get("title"):
            raise ValidationError("title is required", field="title")
        fields = {k: v for k, v in data.items() if k in TEMPLATE_TASK_FIELDS}
        await self._check_references(template_id, fields)

        if "order_index" not in fields:
            existing = await self.list_tasks(template_id)
            fields["order_index"] = max((t.order_index for t in existing), default=-1) + 1

        task = TemplateTask(template_id=template_id, **fields)
        self.db.add(task)
        await self.db.commit()
        await self.db.refresh(task)
        return task

    async def update_task(
        self, template_id: UUID, task_id: UUID, changes: dict[str, Any]
    ) -> TemplateTask:
        task = await self._get_task(template_id, task_id)
        fields = {k: v for k, v in changes.items() if k in TEMPLATE_TASK_FIELDS}
        await self._check_references(template_id, fields)
        for key, value in fields.items():
            setattr(task, key, value)
        await self.db.commit()
        await self.db.refresh(task)
        return task

    async def delete_task(self, template_id: UUID, task_id: UUID) -> None:
        await self._get_task(template_id, task_id)
        await self.db.execute(
            update(TemplateTask)
            .where(TemplateTask.template_id == template_id, TemplateTask.depends_on == task_id)
            .values(depends_on=None)
        )
        await self.db.execute(delete(TemplateTask).where(TemplateTask.id == task_id))
        await self.db.commit()

    async def reorder_tasks(self, template_id: UUID, entries: list[dict[str, Any]]) -> int:
        """Apply {id, order_index} pairs; entries without a numeric index are skipped."""
        await self.get_template(template_id)
        updated = 0
        for entry in entries:
            order_index = entry.get("order_index")
            if not entry.get("id") or isinstance(order_index, bool) or not isinstance(order_index, int):
                continue
            result = await self.db.execute(
                update(TemplateTask)
                .where(TemplateTask.id == entry["id"], TemplateTask.template_id == template_id)
                .values(order_index=order_index)
            )
            updated += result.rowcount
        await self.db.commit()
        return updated

    # =========================================================================
    # Template stages
    # =========================================================================

    async def list_stages(self, template_id: UUID) -> Sequence[Stage]:
        result = await self.db.execute(
            select(Stage).where(Stage.template_id == template_id).order_by(Stage.order_index)
        )
        return result.scalars().all()

    async def _get_stage(self, template_id: UUID, stage_id: UUID) -> Stage:
        result = await self.db.execute(
            select(Stage).where(Stage.id == stage_id, Stage.template_id == template_id)
        )
        stage = result.scalar_one_or_none()
        if stage is None:
            raise NotFoundError("Stage")
        return stage

    async def add_stage(self, template_id: UUID, data: dict[str, Any]) -> Stage:
        await self.get_template(template_id)
        if not data.get("name"):
            raise ValidationError("name is required", field="name")
        fields = {k: v for k, v in data.items() if k in STAGE_FIELDS}
        if "order_index" not in fields:
            existing = await self.list_stages(template_id)
            fields["order_index"] = max((s.order_index for s in existing), default=-1) + 1
        stage = Stage(template_id=template_id, **fields)
        self.db.add(stage)
        await self.db.commit()
        await self.db.refresh(stage)
        return stage

    async def update_stage(
        self, template_id: UUID, stage_id: UUID, changes: dict[str, Any]
    ) -> Stage:
        stage = await self._get_stage(template_id, stage_id)
        for key, value in changes.items():
            if key in STAGE_FIELDS:
                setattr(stage, key, value)
        await self.db.commit()
        await self.db.refresh(stage)
        return stage

    async def delete_stage(self, template_id: UUID, stage_id: UUID) -> None:
        await self._get_stage(template_id, stage_id)
        await self.db.execute(
            update(TemplateTask)
            .where(TemplateTask.template_id == template_id, TemplateTask.stage_id == stage_id)
            .values(stage_id=None)
        )
        await self.db.execute(delete(Stage).where(Stage.id == stage_id))
        await self.db.commit()
