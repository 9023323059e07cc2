"""Task comment threads shared by staff and the client portal."""

from typing import Sequence
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.exceptions import ValidationError
from onboardhub.models.activity import ActorType
from onboardhub.models.project import Comment
from onboardhub.services.activity import ActivityLogger

logger = structlog.get_logger()

# Activity entries keep only the start of a comment
PREVIEW_LENGTH = 100


class CommentService:
    """Service for reading and writing task comments."""

    def __init__(self, db: AsyncSession, activity: ActivityLogger):
        self.db = db
        self.activity = activity

    async def list_comments(
        self,
        project_id: UUID,
        task_id: UUID | None = None,
        include_internal: bool = True,
    ) -> Sequence[Comment]:
        query = select(Comment).where(Comment.project_id == project_id)
        if task_id is not None:
            query = query.where(Comment.task_id == task_id)
        if not include_internal:
            query = query.where(Comment.is_internal.is_(False))
        result = await self.db.execute(query.order_by(Comment.created_at))
        return result.scalars().all()

    async def add_comment(
        self,
        project_id: UUID,
        task_id: UUID,
        content: str | None,
        author_email: str,
        author_name: str,
        author_type: ActorType,
        is_internal: bool = False,
    ) -> Comment:
        """Add a comment to a task. The caller has already checked the task."""
        content = (content or "").strip()
        if not content:
            raise ValidationError("Content is required", field="content")
        if author_type == ActorType.CLIENT and is_internal:
            raise ValidationError("Clients cannot post internal comments", field="is_internal")

        comment = Comment(
            project_id=project_id,
            task_id=task_id,
            author_email=author_email,
            author_name=author_name,
            author_type=author_type.value,
            content=content,
            is_internal=is_internal,
        )
        self.db.add(comment)
        await self.db.commit()
        await self.db.refresh(comment)

        self.activity.log(
            project_id=project_id,
            task_id=task_id,
            actor=author_name,
            actor_type=author_type,
            action="comment_added",
            details={
                "content_preview": content[:PREVIEW_LENGTH],
                "is_internal": is_internal,
            },
        )
        return comment
