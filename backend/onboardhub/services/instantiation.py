"""Template instantiation engine.

Copies a template's stage/task graph into a live project, clones it into
a brand-new template, or copies one project's graph into another project.
All paths use the same two-pass remapping:

1. write every new stage, then map old stage id -> new stage id by matching
   ``order_index`` (which must be unique within the source template);
2. write every new task with its stage reference translated, then map old
   task id -> new task id;
3. translate ``depends_on`` through the task map.

A reference whose target is not part of the copied set (a stage of some
other template, a dependency on a deleted task) cannot be translated. It is
written as NULL and reported in the result and the log.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Sequence
from uuid import UUID, uuid4

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.exceptions import AmbiguousRemapError, NotFoundError, PartialCopyError
from onboardhub.models.project import Stage, Task
from onboardhub.models.template import Template, TemplateTask

logger = structlog.get_logger()

# Fields copied verbatim from a template task to a project task
TASK_COPY_FIELDS = (
    "title",
    "description",
    "order_index",
    "visibility",
    "assignee_type",
    "category",
    "requires_file_upload",
    "requires_signature",
)

# Fields copied verbatim from a template task to another template's task
TEMPLATE_TASK_COPY_FIELDS = TASK_COPY_FIELDS + ("due_days_offset",)


@dataclass
class UnresolvedReference:
    """A template-scoped reference that was written as NULL."""

    task_title: str
    kind: str  # stage_id, depends_on
    old_id: UUID


@dataclass
class CopyResult:
    """Outcome of one instantiation or duplication."""

    target_id: UUID
    stage_map: dict[UUID, UUID] = field(default_factory=dict)
    task_map: dict[UUID, UUID] = field(default_factory=dict)
    unresolved: list[UnresolvedReference] = field(default_factory=list)

    @property
    def stages_created(self) -> int:
        return len(self.stage_map)

    @property
    def tasks_created(self) -> int:
        return len(self.task_map)


def ensure_unique_order(source_id: UUID, stages: Sequence[Stage], source: str = "Template") -> None:
    """Raise AmbiguousRemapError if two stages share an order_index."""
    counts = Counter(s.order_index for s in stages)
    duplicates = [index for index, n in counts.items() if n > 1]
    if duplicates:
        raise AmbiguousRemapError(source_id, duplicates, source=source)


def map_by_order_index(
    old_stages: Sequence[Stage],
    new_stages: Sequence[Stage],
) -> dict[UUID, UUID]:
    """Pair each old stage with the new stage that has the same order_index."""
    new_by_index = {s.order_index: s.id for s in new_stages}
    return {
        old.id: new_by_index[old.order_index]
        for old in old_stages
        if old.order_index in new_by_index
    }


def reset_checklist(items: list | None) -> list:
    """Checklist items with new ids, all unticked."""
    return [{**item, "id": str(uuid4()), "completed": False} for item in items or []]


def due_date_for(start_date: date | None, offset_days: int | None) -> date | None:
    """Absolute due date from a project start and a template offset."""
    if start_date is None or offset_days is None:
        return None
    return start_date + timedelta(days=offset_days)


class TemplateInstantiationEngine:
    """Copies template graphs while remapping template-scoped identifiers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Reads
    # =========================================================================

    async def _load_template(self, template_id: UUID) -> Template:
        result = await self.db.execute(select(Template).where(Template.id == template_id))
        template = result.scalar_one_or_none()
        if template is None:
            raise NotFoundError("Template")
        return template

    async def _load_stages(self, template_id: UUID) -> Sequence[Stage]:
        result = await self.db.execute(
            select(Stage)
            .where(Stage.template_id == template_id)
            .order_by(Stage.order_index)
        )
        return result.scalars().all()

    async def _load_tasks(self, template_id: UUID) -> Sequence[TemplateTask]:
        result = await self.db.execute(
            select(TemplateTask)
            .where(TemplateTask.template_id == template_id)
            .order_by(TemplateTask.order_index)
        )
        return result.scalars().all()

    # =========================================================================
    # Reference translation
    # =========================================================================

    def _translate(
        self,
        result: CopyResult,
        mapping: dict[UUID, UUID],
        old_id: UUID | None,
        kind: str,
        task_title: str,
    ) -> UUID | None:
        if old_id is None:
            return None
        new_id = mapping.get(old_id)
        if new_id is None:
            result.unresolved.append(
                UnresolvedReference(task_title=task_title, kind=kind, old_id=old_id)
            )
            logger.warning(
                "template_reference_unresolved",
                target_id=str(result.target_id),
                kind=kind,
                old_id=str(old_id),
                task_title=task_title,
                reason="referenced row is not part of the copied template",
            )
        return new_id

    async def _copy_stages(
        self,
        result: CopyResult,
        source_stages: Sequence[Stage],
        owner: dict[str, Any],
    ) -> None:
        """First pass: write all stages, then build the stage map."""
        new_stages = [
            Stage(
                name=s.name,
                description=s.description,
                order_index=s.order_index,
                status="pending",
                **owner,
            )
            for s in source_stages
        ]
        self.db.add_all(new_stages)
        await self.db.flush()
        result.stage_map = map_by_order_index(source_stages, new_stages)

    async def _link_dependencies(
        self,
        result: CopyResult,
        source_tasks: Sequence[TemplateTask],
        new_tasks: dict[UUID, Any],
    ) -> None:
        """Last pass: translate depends_on through the completed task map."""
        for old in source_tasks:
            if old.depends_on is None:
                continue
            new_tasks[old.id].depends_on = self._translate(
                result, result.task_map, old.depends_on, "depends_on", old.title
            )
        await self.db.flush()

    # =========================================================================
    # Instantiate into a project
    # =========================================================================

    async def instantiate(
        self,
        template_id: UUID,
        project_id: UUID,
        start_date: date | None = None,
    ) -> CopyResult:
        """
        Copy a template's stages and tasks into a project.

        Runs in the caller's transaction and commits once at the end, so a
        failure leaves the project without any half-copied tasks.

        Args:
            template_id: Source template
            project_id: Project receiving the copy
            start_date: Project start; tasks get ``start_date + due_days_offset``

        Raises:
            NotFoundError if the template does not exist
            AmbiguousRemapError if template stages share an order_index
        """
        await self._load_template(template_id)
        source_stages = await self._load_stages(template_id)
        source_tasks = await self._load_tasks(template_id)
        ensure_unique_order(template_id, source_stages)

        result = CopyResult(target_id=project_id)
        await self._copy_stages(result, source_stages, {"project_id": project_id})

        new_tasks: dict[UUID, Task] = {}
        for tt in source_tasks:
            task = Task(
                project_id=project_id,
                template_task_id=tt.id,
                status="pending",
                checklist=[],
                stage_id=self._translate(result, result.stage_map, tt.stage_id, "stage_id", tt.title),
                due_date=due_date_for(start_date, tt.due_days_offset),
                **{name: getattr(tt, name) for name in TASK_COPY_FIELDS},
            )
            new_tasks[tt.id] = task
        self.db.add_all(list(new_tasks.values()))
        await self.db.flush()
        result.task_map = {old_id: task.id for old_id, task in new_tasks.items()}

        await self._link_dependencies(result, source_tasks, new_tasks)
        await self.db.commit()

        logger.info(
            "template_instantiated",
            template_id=str(template_id),
            project_id=str(project_id),
            stages_created=result.stages_created,
            tasks_created=result.tasks_created,
            unresolved=len(result.unresolved),
        )
        return result

    # =========================================================================
    # Duplicate into a new template
    # =========================================================================

    async def duplicate(self, source_id: UUID, name: str | None = None) -> tuple[Template, CopyResult]:
        """
        Clone a template, its stages and its tasks into a new template.

        The new template row is committed before stages and tasks are copied.
        If a later step fails the partial template is kept for inspection
        and PartialCopyError names it.

        Raises:
            NotFoundError if the source template does not exist
            AmbiguousRemapError if source stages share an order_index
            PartialCopyError if copying stopped after the template was created
        """
        source = await self._load_template(source_id)
        source_stages = await self._load_stages(source_id)
        source_tasks = await self._load_tasks(source_id)
        ensure_unique_order(source_id, source_stages)

        template = Template(
            name=name or f"{source.name} (Copy)",
            description=source.description,
            estimated_days=source.estimated_days,
            is_active=True,
        )
        self.db.add(template)
        await self.db.commit()
        await self.db.refresh(template)

        template_id = template.id
        result = CopyResult(target_id=template_id)
        step = "stages"
        try:
            await self._copy_stages(result, source_stages, {"template_id": template_id})
            await self.db.commit()

            step = "tasks"
            new_tasks: dict[UUID, TemplateTask] = {}
            for old in source_tasks:
                new_tasks[old.id] = TemplateTask(
                    template_id=template_id,
                    stage_id=self._translate(result, result.stage_map, old.stage_id, "stage_id", old.title),
                    **{name: getattr(old, name) for name in TEMPLATE_TASK_COPY_FIELDS},
                )
            self.db.add_all(list(new_tasks.values()))
            await self.db.flush()
            result.task_map = {old_id: t.id for old_id, t in new_tasks.items()}

            step = "dependencies"
            await self._link_dependencies(result, source_tasks, new_tasks)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "template_duplicate_partial",
                source_id=str(source_id),
                template_id=str(template_id),
                step=step,
                error=str(e),
            )
            raise PartialCopyError(template_id, step, str(e)) from e

        logger.info(
            "template_duplicated",
            source_id=str(source_id),
            template_id=str(template.id),
            stages_created=result.stages_created,
            tasks_created=result.tasks_created,
            unresolved=len(result.unresolved),
        )
        return template, result

    # =========================================================================
    # Copy a project's working graph into another project
    # =========================================================================

    async def copy_project(self, source_project_id: UUID, target_project_id: UUID) -> CopyResult:
        """
        Copy a project's stages and tasks into another project.

        Tasks restart as ``pending`` with fresh checklist item ids and no
        completion or client notes. Files, signatures and activity are not
        copied. Commits once at the end.

        Raises:
            AmbiguousRemapError if the source project's stages share an order_index
        """
        stage_result = await self.db.execute(
            select(Stage)
            .where(Stage.project_id == source_project_id)
            .order_by(Stage.order_index)
        )
        source_stages = stage_result.scalars().all()
        task_result = await self.db.execute(
            select(Task)
            .where(Task.project_id == source_project_id)
            .order_by(Task.order_index)
        )
        source_tasks = task_result.scalars().all()
        ensure_unique_order(source_project_id, source_stages, source="Project")

        result = CopyResult(target_id=target_project_id)
        await self._copy_stages(result, source_stages, {"project_id": target_project_id})

        new_tasks: dict[UUID, Task] = {}
        for old in source_tasks:
            new_tasks[old.id] = Task(
                project_id=target_project_id,
                template_task_id=old.template_task_id,
                assignee_email=old.assignee_email,
                staff_notes=old.staff_notes,
                due_date=old.due_date,
                status="pending",
                checklist=reset_checklist(old.checklist),
                stage_id=self._translate(result, result.stage_map, old.stage_id, "stage_id", old.title),
                **{name: getattr(old, name) for name in TASK_COPY_FIELDS},
            )
        self.db.add_all(list(new_tasks.values()))
        await self.db.flush()
        result.task_map = {old_id: task.id for old_id, task in new_tasks.items()}

        await self._link_dependencies(result, source_tasks, new_tasks)
        await self.db.commit()

        logger.info(
            "project_copied",
            source_project_id=str(source_project_id),
            project_id=str(target_project_id),
            stages_created=result.stages_created,
            tasks_created=result.tasks_created,
            unresolved=len(result.unresolved),
        )
        return result
