"""Projects API endpoints (staff)."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel, EmailStr, Field

from onboardhub.api.deps import Activity, DBSession, MailerDep, SettingsDep, StaffCaller, StorageDep
from onboardhub.services.access_control import get_project_or_404
from onboardhub.services.files import FileService
from onboardhub.services.projects import ProjectService
from onboardhub.services.signatures import SignatureService
from onboardhub.services.tags import TagService

router = APIRouter()
logger = structlog.get_logger()


# Request/Response Models
class ProjectCreate(BaseModel):
    """Create a new project, optionally from a template."""

    name: str = Field(..., min_length=1, max_length=255)
    template_id: UUID | None = None
    source_deal_id: str | None = None
    source_deal_name: str | None = None
    client_company_name: str | None = None
    client_contact_name: str | None = None
    client_contact_email: EmailStr | None = None
    client_contact_phone: str | None = None
    community_name: str | None = None
    total_units: int | None = Field(None, ge=0)
    management_start_date: date | None = None
    status: str | None = Field(None, pattern="^(draft|active|paused|completed|cancelled)$")
    assigned_staff_email: EmailStr | None = None
    target_completion_date: date | None = None
    notes: str | None = None


class ProjectUpdate(BaseModel):
    """Update project fields. Only fields that are sent are applied."""

    name: str | None = Field(None, min_length=1, max_length=255)
    client_company_name: str | None = None
    client_contact_name: str | None = None
    client_contact_email: EmailStr | None = None
    client_contact_phone: str | None = None
    community_name: str | None = None
    total_units: int | None = Field(None, ge=0)
    management_start_date: date | None = None
    status: str | None = Field(None, pattern="^(draft|active|paused|completed|cancelled)$")
    assigned_staff_email: EmailStr | None = None
    target_completion_date: date | None = None
    notes: str | None = None


class ProjectDuplicate(BaseModel):
    """Optional name for the copy. Defaults to "<name> (Copy)"."""

    name: str | None = Field(None, max_length=255)


class TagResponse(BaseModel):
    """Tag response."""

    id: UUID
    name: str
    color: str

    class Config:
        from_attributes = True


class ProjectResponse(BaseModel):
    """Project response. The portal token is included for staff only."""

    id: UUID
    name: str
    template_id: UUID | None
    source_deal_id: str | None
    source_deal_name: str | None
    client_company_name: str | None
    client_contact_name: str | None
    client_contact_email: str | None
    client_contact_phone: str | None
    community_name: str | None
    total_units: int | None
    management_start_date: date | None
    public_token: str
    status: str
    assigned_staff_email: str | None
    started_at: datetime | None
    target_completion_date: date | None
    completed_at: datetime | None
    notes: str | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProjectCreateResponse(ProjectResponse):
    """Created project with the outcome of template instantiation."""

    stages_created: int = 0
    tasks_created: int = 0
    unresolved_references: int = 0


class ProjectListItem(BaseModel):
    """Project row in the staff listing."""

    id: UUID
    name: str
    status: str
    community_name: str | None
    client_contact_name: str | None
    assigned_staff_email: str | None
    progress: int
    total_tasks: int
    completed_tasks: int
    overdue_tasks: int
    days_active: int | None
    tags: list[TagResponse]
    created_at: datetime


class TaskSummary(BaseModel):
    """Task row embedded in a project detail."""

    id: UUID
    title: str
    order_index: int
    visibility: str
    status: str
    stage_id: UUID | None
    due_date: date | None
    completed_at: datetime | None
    completed_by: str | None

    class Config:
        from_attributes = True


class ProjectDetailResponse(ProjectResponse):
    """Project with tasks and counts."""

    tasks: list[TaskSummary]
    progress: int
    files_count: int
    signatures_count: int


class InviteResponse(BaseModel):
    success: bool
    email_id: str


class ActivityResponse(BaseModel):
    """Activity log entry."""

    id: UUID
    project_id: UUID
    task_id: UUID | None
    actor: str | None
    actor_type: str
    action: str
    details: dict[str, Any] | None
    created_at: datetime

    class Config:
        from_attributes = True


class FileResponse(BaseModel):
    """Uploaded file metadata."""

    id: UUID
    project_id: UUID
    task_id: UUID | None
    file_name: str
    file_type: str | None
    file_size: int | None
    uploaded_by: str | None
    uploaded_by_type: str
    description: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class SignatureRequest(BaseModel):
    """Ask a signer to sign a document."""

    signer_name: str = Field(..., min_length=1, max_length=255)
    signer_email: EmailStr | None = None
    signer_title: str | None = None
    task_id: UUID | None = None
    document_id: UUID | None = None


class SignatureResponse(BaseModel):
    """Signature as seen by staff."""

    id: UUID
    project_id: UUID
    task_id: UUID | None
    document_id: UUID | None
    document_name: str | None = None
    signer_name: str
    signer_email: str | None
    signer_title: str | None
    signature_type: str | None
    status: str
    signed_at: datetime | None
    declined_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class TagAssign(BaseModel):
    tag_id: UUID


# =============================================================================
# Projects
# =============================================================================


@router.get("/", response_model=list[ProjectListItem])
async def list_projects(
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
    settings: SettingsDep,
    status_filter: str | None = Query(None, alias="status"),
    search: str | None = Query(None, max_length=200),
    staff: str | None = None,
    tag: UUID | None = None,
) -> list[dict[str, Any]]:
    """List projects with progress, overdue counts and tags."""
    service = ProjectService(db, activity, settings)
    return await service.list_projects(status=status_filter, search=search, staff=staff, tag_id=tag)


@router.post("/", response_model=ProjectCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    caller: StaffCaller,
    db: DBSession,
    activity: Activity,
    settings: SettingsDep,
) -> dict[str, Any]:
    """Create a project and instantiate its template, if any."""
    service = ProjectService(db, activity, settings)
    project, copy_result = await service.create_project(
        data.model_dump(exclude_unset=True), actor_type=caller
    )
    return {
        **project.to_dict(),
        "stages_created": copy_result.stages_created if copy_result else 0,
        "tasks_created": copy_result.tasks_created if copy_result else 0,
        "unresolved_references": len(copy_result.unresolved) if copy_result else 0,
    }


@router.get("/{project_id}", response_model=ProjectDetailResponse)
async def get_project(
    project_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
    settings: SettingsDep,
) -> dict[str, Any]:
    service = ProjectService(db, activity, settings)
    return await service.get_project_detail(project_id)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: UUID,
    data: ProjectUpdate,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
    settings: SettingsDep,
):
    service = ProjectService(db, activity, settings)
    return await service.update_project(project_id, data.model_dump(exclude_unset=True))


@router.delete("/{project_id}", response_model=ProjectResponse)
async def cancel_project(
    project_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
    settings: SettingsDep,
):
    """Soft-delete a project by cancelling it."""
    service = ProjectService(db, activity, settings)
    return await service.cancel_project(project_id)


@router.post(
    "/{project_id}/duplicate",
    response_model=ProjectCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_project(
    project_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
    settings: SettingsDep,
    data: ProjectDuplicate | None = None,
) -> dict[str, Any]:
    """Copy a project's stages, tasks and tags into a new draft project."""
    service = ProjectService(db, activity, settings)
    project, copy_result = await service.duplicate_project(
        project_id, name=data.name if data else None
    )
    return {
        **project.to_dict(),
        "stages_created": copy_result.stages_created if copy_result else 0,
        "tasks_created": copy_result.tasks_created if copy_result else 0,
        "unresolved_references": len(copy_result.unresolved) if copy_result else 0,
    }


@router.post("/{project_id}/invite", response_model=InviteResponse)
async def send_invite(
    project_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
    settings: SettingsDep,
    mailer: MailerDep,
) -> dict[str, Any]:
    """Email the portal link to the client contact."""
    service = ProjectService(db, activity, settings)
    sent = await service.send_invite(project_id, mailer)
    return {"success": True, "email_id": sent["id"]}


@router.get("/{project_id}/activity", response_model=list[ActivityResponse])
async def list_activity(
    project_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
    settings: SettingsDep,
    limit: int = Query(50, ge=1, le=200),
):
    """Activity feed, newest first."""
    service = ProjectService(db, activity, settings)
    return await service.list_activity(project_id, limit=limit)


# =============================================================================
# Files
# =============================================================================


@router.get("/{project_id}/files", response_model=list[FileResponse])
async def list_files(
    project_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
    storage: StorageDep,
):
    return await FileService(db, storage, activity).list_files(project_id)


@router.get("/{project_id}/files/{file_id}/download")
async def download_file(
    project_id: UUID,
    file_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
    storage: StorageDep,
) -> Response:
    record, data = await FileService(db, storage, activity).download(project_id, file_id)
    safe_name = record.file_name.replace('"', "")
    return Response(
        content=data,
        media_type=record.file_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{safe_name}"'},
    )


# =============================================================================
# Signatures
# =============================================================================


@router.get("/{project_id}/signatures", response_model=list[SignatureResponse])
async def list_signatures(
    project_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
) -> list[dict[str, Any]]:
    await get_project_or_404(db, project_id)
    return await SignatureService(db, activity).list_signatures(project_id)


@router.post(
    "/{project_id}/signatures",
    response_model=SignatureResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_signature(
    project_id: UUID,
    data: SignatureRequest,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
):
    await get_project_or_404(db, project_id)
    return await SignatureService(db, activity).request_signature(project_id, data.model_dump())


# =============================================================================
# Tags
# =============================================================================


@router.get("/{project_id}/tags", response_model=list[TagResponse])
async def list_project_tags(
    project_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
):
    return await TagService(db, activity).list_project_tags(project_id)


@router.post(
    "/{project_id}/tags",
    response_model=TagResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_tag(
    project_id: UUID,
    data: TagAssign,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
):
    return await TagService(db, activity).assign_tag(project_id, data.tag_id)


@router.delete("/{project_id}/tags/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unassign_tag(
    project_id: UUID,
    tag_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
) -> None:
    await TagService(db, activity).unassign_tag(project_id, tag_id)
