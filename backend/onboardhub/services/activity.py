"""Fire-and-forget activity logging."""

import asyncio
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from onboardhub.models.activity import ActivityLog, ActorType

logger = structlog.get_logger()


class ActivityLogger:
    """Writes activity entries without blocking the caller.

    Each entry is written on its own session in a background task, so a
    failed write can never roll back or fail the operation it describes.
    Failures are logged and dropped.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._pending: set[asyncio.Task] = set()

    def log(
        self,
        project_id: UUID,
        action: str,
        actor_type: ActorType = ActorType.SYSTEM,
        actor: str | None = None,
        task_id: UUID | None = None,
        details: dict | None = None,
    ) -> None:
        """Schedule an activity entry and return immediately."""
        entry = {
            "project_id": project_id,
            "task_id": task_id,
            "actor": actor or actor_type.value,
            "actor_type": actor_type.value,
            "action": action,
            "details": details,
        }
        task = asyncio.create_task(self._write(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, entry: dict) -> None:
        try:
            async with self.session_factory() as session:
                session.add(ActivityLog(**entry))
                await session.commit()
        except Exception as e:
            logger.error(
                "activity_log_write_failed",
                project_id=str(entry["project_id"]),
                action=entry["action"],
                error=str(e),
            )

    async def drain(self) -> None:
        """Wait for every scheduled write. Used on shutdown and in tests."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
