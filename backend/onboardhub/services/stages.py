"""Project stage service."""

from typing import Any, Sequence
from uuid import UUID

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.exceptions import NotFoundError, ValidationError
from onboardhub.models.project import TASK_DONE_STATUSES, Stage, Task

logger = structlog.get_logger()

STAGE_FIELDS = {"name", "description", "order_index", "status"}


class StageService:
    """Manages the stages of a live project."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_stages(self, project_id: UUID) -> Sequence[Stage]:
        result = await self.db.execute(
            select(Stage).where(Stage.project_id == project_id).order_by(Stage.order_index)
        )
        return result.scalars().all()

    async def get_stage(self, project_id: UUID, stage_id: UUID) -> Stage:
        result = await self.db.execute(
            select(Stage).where(Stage.id == stage_id, Stage.project_id == project_id)
        )
        stage = result.scalar_one_or_none()
        if stage is None:
            raise NotFoundError("Stage")
        return stage

    async def create_stage(self, project_id: UUID, data: dict[str, Any]) -> Stage:
        if not data.get("name"):
            raise ValidationError("name is required", field="name")
        fields = {k: v for k, v in data.items() if k in STAGE_FIELDS}
        if "order_index" not in fields:
            existing = await self.list_stages(project_id)
            fields["order_index"] = max((s.order_index for s in existing), default=-1) + 1
        stage = Stage(project_id=project_id, **fields)
        self.db.add(stage)
        await self.db.commit()
        await self.db.refresh(stage)
        logger.info("stage_created", project_id=str(project_id), stage_id=str(stage.id))
        return stage

    async def update_stage(self, project_id: UUID, stage_id: UUID, changes: dict[str, Any]) -> Stage:
        stage = await self.get_stage(project_id, stage_id)
        for key, value in changes.items():
            if key in STAGE_FIELDS:
                setattr(stage, key, value)
        await self.db.commit()
        await self.db.refresh(stage)
        return stage

    async def delete_stage(self, project_id: UUID, stage_id: UUID) -> None:
        await self.get_stage(project_id, stage_id)
        await self.db.execute(
            update(Task)
            .where(Task.project_id == project_id, Task.stage_id == stage_id)
            .values(stage_id=None)
        )
        await self.db.execute(delete(Stage).where(Stage.id == stage_id))
        await self.db.commit()
        logger.info("stage_deleted", project_id=str(project_id), stage_id=str(stage_id))

    async def advance_if_done(self, project_id: UUID, stage_id: UUID | None) -> bool:
        """
        Complete a stage whose tasks are all done and activate the next one.

        Returns:
            True if the stage was marked completed
        """
        if stage_id is None:
            return False

        result = await self.db.execute(
            select(Task.status).where(Task.project_id == project_id, Task.stage_id == stage_id)
        )
        statuses = result.scalars().all()
        if not statuses or any(s not in TASK_DONE_STATUSES for s in statuses):
            return False

        await self.db.execute(
            update(Stage)
            .where(Stage.id == stage_id, Stage.project_id == project_id)
            .values(status="completed")
        )

        next_result = await self.db.execute(
            select(Stage)
            .where(Stage.project_id == project_id, Stage.status == "pending")
            .order_by(Stage.order_index)
            .limit(1)
        )
        next_stage = next_result.scalar_one_or_none()
        if next_stage is not None:
            next_stage.status = "active"

        await self.db.commit()
        logger.info(
            "stage_completed",
            project_id=str(project_id),
            stage_id=str(stage_id),
            next_stage_id=str(next_stage.id) if next_stage else None,
        )
        return True
