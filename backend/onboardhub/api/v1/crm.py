"""CRM integration endpoints (CRM or admin key)."""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, EmailStr, Field

from onboardhub.api.deps import Activity, CrmCaller, DBSession, SettingsDep
from onboardhub.api.v1.projects import ProjectCreateResponse, ProjectResponse
from onboardhub.models.activity import ActorType
from onboardhub.services.projects import ProjectService

router = APIRouter()


class CrmProjectCreate(BaseModel):
    """Create a project from a won CRM deal."""

    name: str = Field(..., min_length=1, max_length=255)
    source_deal_id: str = Field(..., min_length=1)
    source_deal_name: str | None = None
    template_id: UUID | None = None
    client_company_name: str | None = None
    client_contact_name: str | None = None
    client_contact_email: EmailStr | None = None
    community_name: str | None = None
    total_units: int | None = Field(None, ge=0)


class CrmSignatureDetail(BaseModel):
    id: UUID
    signer_name: str
    document_name: str | None
    status: str


class CrmProjectSummary(BaseModel):
    """Compact project status for display inside the CRM."""

    id: UUID
    name: str
    status: str
    progress: int
    days_active: int | None
    next_action: str | None
    portal_url: str
    total_tasks: int
    completed_tasks: int
    pending_signatures: int
    signatures: list[CrmSignatureDetail]


@router.get("/projects", response_model=list[ProjectResponse])
async def list_deal_projects(
    _caller: CrmCaller,
    db: DBSession,
    activity: Activity,
    settings: SettingsDep,
    deal_id: str = Query(..., min_length=1),
):
    return await ProjectService(db, activity, settings).list_by_deal(deal_id)


@router.post("/projects", response_model=ProjectCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_deal_project(
    data: CrmProjectCreate,
    _caller: CrmCaller,
    db: DBSession,
    activity: Activity,
    settings: SettingsDep,
) -> dict[str, Any]:
    service = ProjectService(db, activity, settings)
    project, copy_result = await service.create_project(
        data.model_dump(exclude_unset=True),
        actor_type=ActorType.CRM,
        actor=ActorType.CRM.value,
    )
    return {
        **project.to_dict(),
        "stages_created": copy_result.stages_created if copy_result else 0,
        "tasks_created": copy_result.tasks_created if copy_result else 0,
        "unresolved_references": len(copy_result.unresolved) if copy_result else 0,
    }


@router.get("/projects/{project_id}/summary", response_model=CrmProjectSummary)
async def project_summary(
    project_id: UUID,
    _caller: CrmCaller,
    db: DBSession,
    activity: Activity,
    settings: SettingsDep,
) -> dict[str, Any]:
    return await ProjectService(db, activity, settings).crm_summary(project_id)
