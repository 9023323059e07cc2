"""Append-only activity log."""

from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from onboardhub.db.base import Base, CreatedAtMixin, JSONType, UUIDMixin


class ActorType(str, Enum):
    """Who performed a logged action."""

    SYSTEM = "system"
    STAFF = "staff"
    CLIENT = "client"
    CRM = "crm"


class ActivityLog(Base, UUIDMixin, CreatedAtMixin):
    """
    Activity log entry for a project.

    Rows are only ever inserted; nothing in the service updates or deletes
    them. ``task_id`` is a plain column (no foreign key) so entries keep
    pointing at tasks that have since been deleted.
    """

    __tablename__ = "activity_log"

    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    task_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    actor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    actor_type: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
