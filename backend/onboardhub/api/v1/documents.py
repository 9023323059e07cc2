"""Signable document templates (staff)."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, File, Form, Response, UploadFile, status
from pydantic import BaseModel, Field

from onboardhub.api.deps import DBSession, StaffCaller, StorageDep
from onboardhub.services.signatures import DocumentService

router = APIRouter()

CATEGORY_PATTERN = "^(agreement|disclosure|authorization|other)$"


class DocumentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    template_url: str | None = None
    category: str = Field(default="agreement", pattern=CATEGORY_PATTERN)
    requires_signature: bool = False


class DocumentUpdate(BaseModel):
    """Only fields that are sent are applied."""

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(None, pattern=CATEGORY_PATTERN)
    requires_signature: bool | None = None
    is_active: bool | None = None


class DocumentResponse(BaseModel):
    """Document template response."""

    id: UUID
    name: str
    description: str | None
    template_url: str | None
    category: str
    requires_signature: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class DeleteResponse(BaseModel):
    success: bool


@router.get("/", response_model=list[DocumentResponse])
async def list_documents(_caller: StaffCaller, db: DBSession, active_only: bool = False):
    return await DocumentService(db).list_documents(active_only=active_only)


@router.post("/", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def create_document(data: DocumentCreate, _caller: StaffCaller, db: DBSession):
    return await DocumentService(db).create_document(data.model_dump())


@router.post("/upload", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    _caller: StaffCaller,
    db: DBSession,
    storage: StorageDep,
    file: UploadFile = File(...),
    name: str = Form(...),
    description: str | None = Form(None),
    category: str | None = Form(None),
    requires_signature: bool = Form(True),
):
    """Upload a PDF and register it as a document template."""
    data = await file.read()
    return await DocumentService(db, storage).upload_document(
        file_name=file.filename or "document.pdf",
        content_type=file.content_type,
        data=data,
        name=name,
        description=description,
        category=category,
        requires_signature=requires_signature,
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(document_id: UUID, _caller: StaffCaller, db: DBSession):
    return await DocumentService(db).get_document(document_id)


@router.patch("/{document_id}", response_model=DocumentResponse)
async def update_document(
    document_id: UUID,
    data: DocumentUpdate,
    _caller: StaffCaller,
    db: DBSession,
):
    return await DocumentService(db).update_document(
        document_id, data.model_dump(exclude_unset=True)
    )


@router.delete("/{document_id}", response_model=DeleteResponse)
async def delete_document(document_id: UUID, _caller: StaffCaller, db: DBSession):
    """Soft-delete: the document is deactivated, not removed."""
    await DocumentService(db).deactivate_document(document_id)
    return {"success": True}


@router.get("/{document_id}/download")
async def download_document(
    document_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    storage: StorageDep,
) -> Response:
    document, data = await DocumentService(db, storage).download_document(document_id)
    file_name = document.template_url.rsplit("/", 1)[-1].replace('"', "")
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )
