"""Uploaded onboarding files: metadata rows plus bytes in the blob store."""

from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.exceptions import NotFoundError, ValidationError
from onboardhub.models.activity import ActorType
from onboardhub.models.document import OnboardingFile
from onboardhub.services.activity import ActivityLogger
from onboardhub.services.storage import BlobStore

logger = structlog.get_logger()

MAX_FILE_SIZE = 50 * 1024 * 1024  # 50MB

EXTENSION_MIME_TYPES = {
    "pdf": {"application/pdf"},
    "doc": {"application/msword"},
    "docx": {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"},
    "xls": {"application/vnd.ms-excel"},
    "xlsx": {"application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"},
    "png": {"image/png"},
    "jpg": {"image/jpeg"},
    "jpeg": {"image/jpeg"},
    "gif": {"image/gif"},
}

GENERIC_MIME_TYPE = "application/octet-stream"


def validate_upload(file_name: str, content_type: str | None, size: int) -> None:
    """Reject empty, oversized or unexpected files before anything is stored."""
    if size == 0:
        raise ValidationError("File is empty", field="file")
    if size > MAX_FILE_SIZE:
        raise ValidationError(
            f"File too large. Maximum size is {MAX_FILE_SIZE // (1024 * 1024)}MB",
            field="file",
        )

    extension = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
    allowed = EXTENSION_MIME_TYPES.get(extension)
    if allowed is None:
        raise ValidationError(
            f'File type ".{extension}" not allowed. '
            f"Allowed: {', '.join(EXTENSION_MIME_TYPES)}",
            field="file",
        )
    if content_type and content_type != GENERIC_MIME_TYPE and content_type not in allowed:
        raise ValidationError(
            f'File MIME type "{content_type}" does not match extension ".{extension}"',
            field="file",
        )


class FileService:
    """Service for project file uploads and downloads."""

    def __init__(self, db: AsyncSession, storage: BlobStore, activity: ActivityLogger):
        self.db = db
        self.storage = storage
        self.activity = activity

    async def list_files(self, project_id: UUID) -> Sequence[OnboardingFile]:
        result = await self.db.execute(
            select(OnboardingFile)
            .where(OnboardingFile.project_id == project_id)
            .order_by(OnboardingFile.created_at.desc())
        )
        return result.scalars().all()

    async def get_file(self, project_id: UUID, file_id: UUID) -> OnboardingFile:
        result = await self.db.execute(
            select(OnboardingFile).where(
                OnboardingFile.id == file_id,
                OnboardingFile.project_id == project_id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError("File")
        return record

    async def upload(
        self,
        project_id: UUID,
        file_name: str,
        content_type: str | None,
        data: bytes,
        uploaded_by: str,
        uploaded_by_type: ActorType,
        task_id: UUID | None = None,
        description: str | None = None,
    ) -> OnboardingFile:
        """Store the bytes, then record the file. Task ownership is the caller's check."""
        validate_upload(file_name, content_type, len(data))
        content_type = content_type or GENERIC_MIME_TYPE

        stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        storage_path = await self.storage.upload(
            f"{project_id}/{stamp}_{file_name}", data, content_type
        )

        record = OnboardingFile(
            project_id=project_id,
            task_id=task_id,
            file_name=file_name,
            file_type=content_type,
            file_size=len(data),
            storage_path=storage_path,
            uploaded_by=uploaded_by,
            uploaded_by_type=uploaded_by_type.value,
            description=description,
        )
        self.db.add(record)
        await self.db.commit()
        await self.db.refresh(record)

        self.activity.log(
            project_id=project_id,
            task_id=task_id,
            actor=uploaded_by,
            actor_type=uploaded_by_type,
            action="file_uploaded",
            details={
                "file_name": file_name,
                "file_size": len(data),
                "file_type": content_type,
            },
        )
        logger.info(
            "file_uploaded",
            project_id=str(project_id),
            file_id=str(record.id),
            size=len(data),
        )
        return record

    async def download(self, project_id: UUID, file_id: UUID) -> tuple[OnboardingFile, bytes]:
        record = await self.get_file(project_id, file_id)
        data = await self.storage.download(record.storage_path)
        return record, data
