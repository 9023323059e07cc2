"""Project, stage, task, comment and tag models."""

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from onboardhub.db.base import Base, BaseModel, CreatedAtMixin, JSONType

# Task statuses that count as "done" for stage advancement
TASK_DONE_STATUSES = ("completed", "skipped")

# Project statuses that the client portal refuses to serve
PORTAL_HIDDEN_STATUSES = ("draft", "cancelled")


class Project(BaseModel):
    """Client onboarding project."""

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    template_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("templates.id", ondelete="SET NULL"),
        nullable=True,
    )

    # CRM linkage
    source_deal_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    source_deal_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Client contact
    client_company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_contact_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    community_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total_units: Mapped[int | None] = mapped_column(Integer, nullable=True)
    management_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Sole credential of the client portal
    public_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)

    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default="draft"
    )  # draft, active, paused, completed, cancelled
    assigned_staff_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    target_completion_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Project {self.name}>"


class Stage(BaseModel):
    """Named phase grouping tasks. Owned by one template or one project."""

    __tablename__ = "stages"
    __table_args__ = (
        CheckConstraint(
            "(template_id IS NULL) <> (project_id IS NULL)",
            name="ck_stage_single_owner",
        ),
    )

    template_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("templates.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    project_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )  # pending, active, completed, archived

    def __repr__(self) -> str:
        return f"<Stage {self.name}>"


class Task(BaseModel):
    """Unit of work inside a project."""

    __tablename__ = "tasks"

    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    template_task_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("template_tasks.id", ondelete="SET NULL"),
        nullable=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    visibility: Mapped[str] = mapped_column(String(20), nullable=False, default="internal")
    assignee_type: Mapped[str] = mapped_column(String(20), nullable=False, default="staff")
    assignee_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="setup")
    requires_file_upload: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requires_signature: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default="pending", index=True
    )  # pending, in_progress, waiting_client, completed, skipped
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    depends_on: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
    )
    stage_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("stages.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    staff_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    client_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    checklist: Mapped[list | None] = mapped_column(JSONType, nullable=True, default=list)

    def __repr__(self) -> str:
        return f"<Task {self.title}>"


class Comment(BaseModel):
    """Comment on a task. Internal comments never reach the portal."""

    __tablename__ = "comments"

    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_email: Mapped[str] = mapped_column(String(255), nullable=False)
    author_name: Mapped[str] = mapped_column(String(255), nullable=False)
    author_type: Mapped[str] = mapped_column(String(20), nullable=False)  # staff, client, system
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Tag(Base, CreatedAtMixin):
    """Project label."""

    __tablename__ = "tags"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#6b7280")


class ProjectTag(Base):
    """Many-to-many join between projects and tags."""

    __tablename__ = "project_tags"

    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tag_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    )
