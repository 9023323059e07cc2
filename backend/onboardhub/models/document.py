"""Signable documents, signatures and uploaded files."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from onboardhub.db.base import Base, BaseModel, CreatedAtMixin, UUIDMixin

# Signature statuses from which a client may still sign
SIGNABLE_STATUSES = ("pending", "sent", "viewed")


class Document(BaseModel):
    """Document template that clients are asked to sign."""

    __tablename__ = "documents"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    template_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    category: Mapped[str] = mapped_column(
        String(50), nullable=False, default="agreement"
    )  # agreement, disclosure, authorization
    requires_signature: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Signature(Base, UUIDMixin, CreatedAtMixin):
    """Signature request and, once signed, the captured signature."""

    __tablename__ = "signatures"

    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    task_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
    )
    document_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("documents.id", ondelete="SET NULL"),
        nullable=True,
    )

    signer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    signer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    signer_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    signature_type: Mapped[str | None] = mapped_column(String(10), nullable=True)  # draw, type
    signature_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    typed_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    consent_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    consent_given_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    signed_pdf_path: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )  # pending, sent, viewed, signed, declined
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    declined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decline_reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class OnboardingFile(Base, UUIDMixin, CreatedAtMixin):
    """File uploaded by a client or staff member. Bytes live in the blob store."""

    __tablename__ = "files"

    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    task_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
    )
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    file_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    storage_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    uploaded_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    uploaded_by_type: Mapped[str] = mapped_column(String(20), nullable=False)  # client, staff
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
