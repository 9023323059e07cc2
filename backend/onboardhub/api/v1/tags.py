"""Tag vocabulary endpoints (staff)."""

from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from onboardhub.api.deps import Activity, DBSession, StaffCaller
from onboardhub.api.v1.projects import TagResponse
from onboardhub.services.tags import TagService

router = APIRouter()


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str | None = Field(None, pattern="^#[0-9a-fA-F]{6}$")


@router.get("/", response_model=list[TagResponse])
async def list_tags(_caller: StaffCaller, db: DBSession, activity: Activity):
    return await TagService(db, activity).list_tags()


@router.post("/", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
async def create_tag(data: TagCreate, _caller: StaffCaller, db: DBSession, activity: Activity):
    return await TagService(db, activity).create_tag(data.name, data.color)


@router.delete("/{tag_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tag(tag_id: UUID, _caller: StaffCaller, db: DBSession, activity: Activity) -> None:
    await TagService(db, activity).delete_tag(tag_id)
