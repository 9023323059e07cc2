"""Template models: reusable blueprints of stages and tasks."""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from onboardhub.db.base import BaseModel


class Template(BaseModel):
    """Reusable onboarding blueprint, not bound to any project."""

    __tablename__ = "templates"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    estimated_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Template {self.name}>"


class TemplateTask(BaseModel):
    """Task definition inside a template.

    ``depends_on`` and ``stage_id`` are template-scoped: they point at other
    rows of the same template and must be remapped when copied.
    """

    __tablename__ = "template_tasks"

    template_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    visibility: Mapped[str] = mapped_column(
        String(20), nullable=False, default="internal"
    )  # internal, external
    assignee_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="staff"
    )  # staff, client
    category: Mapped[str] = mapped_column(
        String(50), nullable=False, default="setup"
    )  # documents, setup, signatures, review, financial, communication
    requires_file_upload: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    requires_signature: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    depends_on: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("template_tasks.id", ondelete="SET NULL"),
        nullable=True,
    )
    stage_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("stages.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    due_days_offset: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<TemplateTask {self.title}>"
