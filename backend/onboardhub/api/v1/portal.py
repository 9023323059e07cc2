"""Client portal endpoints.

The ``{token}`` path segment is the client's only credential. It is
resolved on every request, and every sub-resource is checked against the
resolved project.
"""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, File, Form, Request, Response, UploadFile, status
from pydantic import BaseModel, Field

from onboardhub.api.deps import Activity, DBSession, PortalProject, StorageDep
from onboardhub.api.v1.tasks import CommentResponse
from onboardhub.services.portal import PortalService

router = APIRouter()


# Request/Response Models
class PortalProjectSummary(BaseModel):
    id: UUID
    name: str
    status: str
    community_name: str | None
    client_company_name: str | None
    client_contact_name: str | None
    management_start_date: date | None


class PortalTask(BaseModel):
    id: UUID
    title: str
    description: str | None
    category: str
    status: str
    requires_file_upload: bool
    requires_signature: bool
    client_notes: str | None
    order_index: int
    due_date: date | None = None
    stage_id: UUID | None = None
    checklist: list[dict] = Field(default_factory=list)


class PortalStage(BaseModel):
    id: UUID
    name: str
    description: str | None
    order_index: int
    status: str
    total_tasks: int
    completed_tasks: int


class PortalSignature(BaseModel):
    id: UUID
    status: str
    signer_name: str
    document_id: UUID | None
    task_id: UUID | None
    signed_at: datetime | None
    document_name: str | None = None


class PortalFile(BaseModel):
    id: UUID
    file_name: str
    task_id: UUID | None
    created_at: datetime


class PortalView(BaseModel):
    """Everything the portal page renders, in one response."""

    project: PortalProjectSummary
    tasks: list[PortalTask]
    stages: list[PortalStage]
    progress: int
    completed_tasks: int
    total_tasks: int
    signatures: list[PortalSignature]
    files: list[PortalFile]


class PortalTaskUpdate(BaseModel):
    """Clients may complete a task and/or leave notes on it."""

    status: str | None = None
    client_notes: str | None = Field(None, max_length=10000)


class PortalCommentCreate(BaseModel):
    content: str = Field(..., max_length=10000)
    author_email: str | None = None
    author_name: str | None = None


class SignRequest(BaseModel):
    signature_type: str
    signer_name: str
    signature_data: str | None = None
    typed_name: str | None = None
    signer_email: str | None = None
    signer_title: str | None = None
    consent_given: bool = False


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.get("/{token}", response_model=PortalView)
async def get_portal(project: PortalProject, db: DBSession, activity: Activity):
    """Aggregated portal view for the token's project."""
    return await PortalService(db, activity).view(project)


@router.patch("/{token}/tasks/{task_id}", response_model=PortalTask)
async def update_task(
    task_id: UUID,
    data: PortalTaskUpdate,
    project: PortalProject,
    db: DBSession,
    activity: Activity,
):
    return await PortalService(db, activity).update_task(
        project, task_id, status=data.status, client_notes=data.client_notes
    )


@router.get("/{token}/tasks/{task_id}/comments", response_model=list[CommentResponse])
async def list_comments(task_id: UUID, project: PortalProject, db: DBSession, activity: Activity):
    """Non-internal comments on an external task."""
    return await PortalService(db, activity).list_comments(project, task_id)


@router.post(
    "/{token}/tasks/{task_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    task_id: UUID,
    data: PortalCommentCreate,
    project: PortalProject,
    db: DBSession,
    activity: Activity,
):
    return await PortalService(db, activity).add_comment(
        project,
        task_id,
        data.content,
        author_email=data.author_email,
        author_name=data.author_name,
    )


@router.get("/{token}/signatures", response_model=list[PortalSignature])
async def list_signatures(project: PortalProject, db: DBSession, activity: Activity):
    """Signatures of the project with document names, declined ones excluded."""
    return await PortalService(db, activity).list_signatures(project)


@router.post("/{token}/signatures/{signature_id}/sign", response_model=PortalSignature)
async def sign(
    signature_id: UUID,
    data: SignRequest,
    request: Request,
    project: PortalProject,
    db: DBSession,
    activity: Activity,
):
    return await PortalService(db, activity).sign(
        project,
        signature_id,
        data.model_dump(),
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.get("/{token}/signatures/{signature_id}/document")
async def signature_document(
    signature_id: UUID,
    project: PortalProject,
    db: DBSession,
    activity: Activity,
    storage: StorageDep,
) -> Response:
    """The signed PDF if one is stored, otherwise the document to be signed."""
    file_name, data = await PortalService(db, activity, storage).signature_document(
        project, signature_id
    )
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{file_name}"'},
    )


@router.get("/{token}/files", response_model=list[PortalFile])
async def list_files(
    project: PortalProject,
    db: DBSession,
    activity: Activity,
    storage: StorageDep,
):
    return await PortalService(db, activity, storage).list_files(project)


@router.post("/{token}/files", response_model=PortalFile, status_code=status.HTTP_201_CREATED)
async def upload_file(
    project: PortalProject,
    db: DBSession,
    activity: Activity,
    storage: StorageDep,
    file: UploadFile = File(...),
    task_id: UUID | None = Form(None),
    description: str | None = Form(None),
):
    data = await file.read()
    return await PortalService(db, activity, storage).upload_file(
        project,
        file_name=file.filename or "upload",
        content_type=file.content_type,
        data=data,
        task_id=task_id,
        description=description,
    )
