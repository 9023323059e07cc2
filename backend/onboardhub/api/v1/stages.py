"""Project stage endpoints (staff)."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from onboardhub.api.deps import DBSession, StaffCaller
from onboardhub.services.access_control import get_project_or_404
from onboardhub.services.stages import StageService

router = APIRouter()

STAGE_STATUS_PATTERN = "^(pending|active|completed)$"


class StageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    order_index: int | None = None
    status: str = Field(default="pending", pattern=STAGE_STATUS_PATTERN)


class StageUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    order_index: int | None = None
    status: str | None = Field(None, pattern=STAGE_STATUS_PATTERN)


class StageResponse(BaseModel):
    """Stage response model."""

    id: UUID
    template_id: UUID | None
    project_id: UUID | None
    name: str
    description: str | None
    order_index: int
    status: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("/{project_id}/stages", response_model=list[StageResponse])
async def list_stages(project_id: UUID, _caller: StaffCaller, db: DBSession):
    await get_project_or_404(db, project_id)
    return await StageService(db).list_stages(project_id)


@router.post(
    "/{project_id}/stages",
    response_model=StageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_stage(
    project_id: UUID,
    data: StageCreate,
    _caller: StaffCaller,
    db: DBSession,
):
    await get_project_or_404(db, project_id)
    return await StageService(db).create_stage(project_id, data.model_dump(exclude_none=True))


@router.patch("/{project_id}/stages/{stage_id}", response_model=StageResponse)
async def update_stage(
    project_id: UUID,
    stage_id: UUID,
    data: StageUpdate,
    _caller: StaffCaller,
    db: DBSession,
):
    return await StageService(db).update_stage(
        project_id, stage_id, data.model_dump(exclude_unset=True)
    )


@router.delete("/{project_id}/stages/{stage_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_stage(
    project_id: UUID,
    stage_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
) -> None:
    await StageService(db).delete_stage(project_id, stage_id)
