"""Project tags."""

from typing import Sequence
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.exceptions import ConflictError, NotFoundError, ValidationError
from onboardhub.models.activity import ActorType
from onboardhub.models.project import ProjectTag, Tag
from onboardhub.services.access_control import get_project_or_404
from onboardhub.services.activity import ActivityLogger

logger = structlog.get_logger()

DEFAULT_TAG_COLOR = "#6b7280"


class TagService:
    """Service for the shared tag vocabulary and project assignments."""

    def __init__(self, db: AsyncSession, activity: ActivityLogger):
        self.db = db
        self.activity = activity

    async def list_tags(self) -> Sequence[Tag]:
        result = await self.db.execute(select(Tag).order_by(Tag.name))
        return result.scalars().all()

    async def _get_tag(self, tag_id: UUID) -> Tag:
        result = await self.db.execute(select(Tag).where(Tag.id == tag_id))
        tag = result.scalar_one_or_none()
        if tag is None:
            raise NotFoundError("Tag")
        return tag

    async def create_tag(self, name: str | None, color: str | None = None) -> Tag:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required", field="name")

        tag = Tag(name=name, color=color or DEFAULT_TAG_COLOR)
        self.db.add(tag)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(f'Tag "{name}" already exists') from e
        await self.db.refresh(tag)
        logger.info("tag_created", tag_id=str(tag.id), name=name)
        return tag

    async def delete_tag(self, tag_id: UUID) -> None:
        await self._get_tag(tag_id)
        await self.db.execute(delete(ProjectTag).where(ProjectTag.tag_id == tag_id))
        await self.db.execute(delete(Tag).where(Tag.id == tag_id))
        await self.db.commit()
        logger.info("tag_deleted", tag_id=str(tag_id))

    async def list_project_tags(self, project_id: UUID) -> Sequence[Tag]:
        await get_project_or_404(self.db, project_id)
        result = await self.db.execute(
            select(Tag)
            .join(ProjectTag, ProjectTag.tag_id == Tag.id)
            .where(ProjectTag.project_id == project_id)
            .order_by(Tag.name)
        )
        return result.scalars().all()

    async def assign_tag(self, project_id: UUID, tag_id: UUID, actor: str | None = None) -> Tag:
        await get_project_or_404(self.db, project_id)
        tag = await self._get_tag(tag_id)

        self.db.add(ProjectTag(project_id=project_id, tag_id=tag_id))
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError("Tag is already assigned to this project") from e

        self.activity.log(
            project_id=project_id,
            actor=actor,
            actor_type=ActorType.STAFF,
            action="tag_added",
            details={"tag_id": str(tag_id), "tag_name": tag.name},
        )
        return tag

    async def unassign_tag(self, project_id: UUID, tag_id: UUID, actor: str | None = None) -> None:
        result = await self.db.execute(
            delete(ProjectTag).where(
                ProjectTag.project_id == project_id,
                ProjectTag.tag_id == tag_id,
            )
        )
        await self.db.commit()
        if result.rowcount == 0:
            raise NotFoundError("Tag assignment")

        self.activity.log(
            project_id=project_id,
            actor=actor,
            actor_type=ActorType.STAFF,
            action="tag_removed",
            details={"tag_id": str(tag_id)},
        )
