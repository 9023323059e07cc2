"""Template endpoints (staff): templates, their stages and tasks, duplication."""

from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from onboardhub.api.deps import DBSession, StaffCaller
from onboardhub.api.v1.stages import StageCreate, StageResponse, StageUpdate
from onboardhub.api.v1.tasks import ReorderRequest, ReorderResponse, VISIBILITY_PATTERN
from onboardhub.services.instantiation import TemplateInstantiationEngine
from onboardhub.services.templates import TemplateService

router = APIRouter()
logger = structlog.get_logger()


# Request/Response Models
class TemplateTaskCreate(BaseModel):
    """Task definition inside a template."""

    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    order_index: int | None = None
    visibility: str = Field(default="internal", pattern=VISIBILITY_PATTERN)
    assignee_type: str = Field(default="staff", pattern="^(staff|client)$")
    category: str = "setup"
    requires_file_upload: bool = False
    requires_signature: bool = False
    depends_on: UUID | None = None
    stage_id: UUID | None = None
    due_days_offset: int | None = None


class TemplateTaskUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=500)
    description: str | None = None
    order_index: int | None = None
    visibility: str | None = Field(None, pattern=VISIBILITY_PATTERN)
    assignee_type: str | None = Field(None, pattern="^(staff|client)$")
    category: str | None = None
    requires_file_upload: bool | None = None
    requires_signature: bool | None = None
    depends_on: UUID | None = None
    stage_id: UUID | None = None
    due_days_offset: int | None = None


class TemplateCreate(BaseModel):
    """Create a template with optional embedded tasks."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    estimated_days: int | None = Field(None, ge=0)
    created_by: str | None = None
    tasks: list[TemplateTaskCreate] = Field(default_factory=list)


class TemplateUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    estimated_days: int | None = Field(None, ge=0)
    is_active: bool | None = None


class DuplicateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)


class TemplateTaskResponse(BaseModel):
    """Template task response."""

    id: UUID
    template_id: UUID
    title: str
    description: str | None
    order_index: int
    visibility: str
    assignee_type: str
    category: str
    requires_file_upload: bool
    requires_signature: bool
    depends_on: UUID | None
    stage_id: UUID | None
    due_days_offset: int | None

    class Config:
        from_attributes = True


class TemplateResponse(BaseModel):
    """Template response."""

    id: UUID
    name: str
    description: str | None
    is_active: bool
    estimated_days: int | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TemplateDetailResponse(TemplateResponse):
    """Template with its stages and tasks."""

    stages: list[StageResponse] = Field(default_factory=list)
    tasks: list[TemplateTaskResponse] = Field(default_factory=list)


class UnresolvedReferenceResponse(BaseModel):
    task_title: str
    kind: str
    old_id: UUID


class DuplicateResponse(TemplateDetailResponse):
    """The new template plus what could not be remapped."""

    unresolved: list[UnresolvedReferenceResponse] = Field(default_factory=list)


async def _detail(service: TemplateService, template_id: UUID) -> dict[str, Any]:
    template = await service.get_template(template_id)
    return {
        **template.to_dict(),
        "stages": await service.list_stages(template_id),
        "tasks": await service.list_tasks(template_id),
    }


# =============================================================================
# Templates
# =============================================================================


@router.get("/", response_model=list[TemplateResponse])
async def list_templates(_caller: StaffCaller, db: DBSession, active_only: bool = False):
    return await TemplateService(db).list_templates(active_only=active_only)


@router.post("/", response_model=TemplateDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_template(data: TemplateCreate, _caller: StaffCaller, db: DBSession) -> dict[str, Any]:
    service = TemplateService(db)
    template, _ = await service.create_template(
        name=data.name,
        description=data.description,
        estimated_days=data.estimated_days,
        created_by=data.created_by,
        tasks=[t.model_dump(exclude_none=True) for t in data.tasks],
    )
    return await _detail(service, template.id)


@router.get("/{template_id}", response_model=TemplateDetailResponse)
async def get_template(template_id: UUID, _caller: StaffCaller, db: DBSession) -> dict[str, Any]:
    return await _detail(TemplateService(db), template_id)


@router.patch("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: UUID,
    data: TemplateUpdate,
    _caller: StaffCaller,
    db: DBSession,
):
    return await TemplateService(db).update_template(
        template_id, data.model_dump(exclude_unset=True)
    )


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(template_id: UUID, _caller: StaffCaller, db: DBSession) -> None:
    await TemplateService(db).delete_template(template_id)


@router.post(
    "/{template_id}/duplicate",
    response_model=DuplicateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_template(
    template_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    data: DuplicateRequest | None = None,
) -> dict[str, Any]:
    """Clone a template with its stages and tasks."""
    engine = TemplateInstantiationEngine(db)
    template, result = await engine.duplicate(template_id, name=data.name if data else None)
    detail = await _detail(TemplateService(db), template.id)
    detail["unresolved"] = [
        {"task_title": u.task_title, "kind": u.kind, "old_id": u.old_id} for u in result.unresolved
    ]
    return detail


# =============================================================================
# Template tasks
# =============================================================================


@router.get("/{template_id}/tasks", response_model=list[TemplateTaskResponse])
async def list_template_tasks(template_id: UUID, _caller: StaffCaller, db: DBSession):
    service = TemplateService(db)
    await service.get_template(template_id)
    return await service.list_tasks(template_id)


@router.post(
    "/{template_id}/tasks",
    response_model=TemplateTaskResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_template_task(
    template_id: UUID,
    data: TemplateTaskCreate,
    _caller: StaffCaller,
    db: DBSession,
):
    return await TemplateService(db).add_task(template_id, data.model_dump(exclude_none=True))


@router.put("/{template_id}/tasks/reorder", response_model=ReorderResponse)
async def reorder_template_tasks(
    template_id: UUID,
    data: ReorderRequest,
    _caller: StaffCaller,
    db: DBSession,
) -> dict[str, int]:
    entries = []
    for entry in data.tasks:
        try:
            task_id = UUID(str(entry.get("id")))
        except ValueError:
            continue
        entries.append({"id": task_id, "order_index": entry.get("order_index")})
    updated = await TemplateService(db).reorder_tasks(template_id, entries)
    return {"updated": updated}


@router.patch("/{template_id}/tasks/{task_id}", response_model=TemplateTaskResponse)
async def update_template_task(
    template_id: UUID,
    task_id: UUID,
    data: TemplateTaskUpdate,
    _caller: StaffCaller,
    db: DBSession,
):
    return await TemplateService(db).update_task(
        template_id, task_id, data.model_dump(exclude_unset=True)
    )


@router.delete("/{template_id}/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template_task(
    template_id: UUID,
    task_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
) -> None:
    await TemplateService(db).delete_task(template_id, task_id)


# =============================================================================
# Template stages
# =============================================================================


@router.get("/{template_id}/stages", response_model=list[StageResponse])
async def list_template_stages(template_id: UUID, _caller: StaffCaller, db: DBSession):
    service = TemplateService(db)
    await service.get_template(template_id)
    return await service.list_stages(template_id)


@router.post(
    "/{template_id}/stages",
    response_model=StageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_template_stage(
    template_id: UUID,
    data: StageCreate,
    _caller: StaffCaller,
    db: DBSession,
):
    return await TemplateService(db).add_stage(template_id, data.model_dump(exclude_none=True))


@router.patch("/{template_id}/stages/{stage_id}", response_model=StageResponse)
async def update_template_stage(
    template_id: UUID,
    stage_id: UUID,
    data: StageUpdate,
    _caller: StaffCaller,
    db: DBSession,
):
    return await TemplateService(db).update_stage(
        template_id, stage_id, data.model_dump(exclude_unset=True)
    )


@router.delete("/{template_id}/stages/{stage_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template_stage(
    template_id: UUID,
    stage_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
) -> None:
    await TemplateService(db).delete_stage(template_id, stage_id)
