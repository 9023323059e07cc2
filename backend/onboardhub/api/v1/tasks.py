"""Project task endpoints (staff): CRUD, bulk operations, reorder and comments."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from onboardhub.api.deps import Activity, DBSession, StaffCaller
from onboardhub.models.activity import ActorType
from onboardhub.services.access_control import get_project_or_404, get_project_task
from onboardhub.services.comments import CommentService
from onboardhub.services.tasks import TaskService

router = APIRouter()

VISIBILITY_PATTERN = "^(internal|external)$"
STATUS_PATTERN = "^(pending|in_progress|waiting_client|completed|skipped|blocked)$"


# Request/Response Models
class ChecklistItem(BaseModel):
    label: str
    done: bool = False


class TaskCreate(BaseModel):
    """Create a task in a project."""

    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    order_index: int | None = None
    visibility: str = Field(default="internal", pattern=VISIBILITY_PATTERN)
    assignee_type: str = Field(default="staff", pattern="^(staff|client)$")
    assignee_email: str | None = None
    category: str = "setup"
    requires_file_upload: bool = False
    requires_signature: bool = False
    status: str = Field(default="pending", pattern=STATUS_PATTERN)
    depends_on: UUID | None = None
    stage_id: UUID | None = None
    due_date: date | None = None
    staff_notes: str | None = None
    checklist: list[ChecklistItem] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    """Update a task. Only fields that are sent are applied."""

    title: str | None = Field(None, min_length=1, max_length=500)
    description: str | None = None
    order_index: int | None = None
    visibility: str | None = Field(None, pattern=VISIBILITY_PATTERN)
    assignee_type: str | None = Field(None, pattern="^(staff|client)$")
    assignee_email: str | None = None
    category: str | None = None
    requires_file_upload: bool | None = None
    requires_signature: bool | None = None
    status: str | None = Field(None, pattern=STATUS_PATTERN)
    completed_by: str | None = None
    depends_on: UUID | None = None
    stage_id: UUID | None = None
    due_date: date | None = None
    staff_notes: str | None = None
    client_notes: str | None = None
    checklist: list[ChecklistItem] | None = None


class TaskResponse(BaseModel):
    """Task response model."""

    id: UUID
    project_id: UUID
    template_task_id: UUID | None
    title: str
    description: str | None
    order_index: int
    visibility: str
    assignee_type: str
    assignee_email: str | None
    category: str
    requires_file_upload: bool
    requires_signature: bool
    status: str
    completed_at: datetime | None
    completed_by: str | None
    depends_on: UUID | None
    stage_id: UUID | None
    due_date: date | None
    staff_notes: str | None
    client_notes: str | None
    checklist: list[dict[str, Any]] | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BulkAction(BaseModel):
    """Complete or delete many tasks at once."""

    action: str = Field(..., pattern="^(complete|delete)$")
    task_ids: list[UUID] = Field(..., min_length=1, max_length=500)


class BulkResponse(BaseModel):
    action: str
    requested: int
    succeeded: int
    failed: list[UUID]


class ReorderRequest(BaseModel):
    """Entries without a numeric order_index are ignored."""

    tasks: list[dict[str, Any]]


class ReorderResponse(BaseModel):
    updated: int


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)
    author_email: str = "staff"
    author_name: str = "Staff"
    is_internal: bool = False


class CommentResponse(BaseModel):
    """Task comment."""

    id: UUID
    task_id: UUID
    author_email: str
    author_name: str
    author_type: str
    content: str
    is_internal: bool
    created_at: datetime

    class Config:
        from_attributes = True


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(exclude_unset=True)


@router.get("/{project_id}/tasks", response_model=list[TaskResponse])
async def list_tasks(
    project_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
):
    await get_project_or_404(db, project_id)
    return await TaskService(db, activity).list_tasks(project_id)


@router.post("/{project_id}/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    project_id: UUID,
    data: TaskCreate,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
):
    await get_project_or_404(db, project_id)
    fields = data.model_dump(exclude_none=True)
    return await TaskService(db, activity).create_task(project_id, fields)


@router.patch("/{project_id}/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    project_id: UUID,
    task_id: UUID,
    data: TaskUpdate,
    caller: StaffCaller,
    db: DBSession,
    activity: Activity,
):
    return await TaskService(db, activity).update_task(
        project_id, task_id, _dump(data), actor_type=caller
    )


@router.delete("/{project_id}/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    project_id: UUID,
    task_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
) -> None:
    await TaskService(db, activity).delete_task(project_id, task_id)


@router.post("/{project_id}/tasks/bulk", response_model=BulkResponse)
async def bulk_tasks(
    project_id: UUID,
    data: BulkAction,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
) -> dict[str, Any]:
    """Complete or delete tasks one by one; unknown ids are skipped."""
    await get_project_or_404(db, project_id)
    service = TaskService(db, activity)
    if data.action == "complete":
        result = await service.bulk_complete(project_id, data.task_ids)
    else:
        result = await service.bulk_delete(project_id, data.task_ids)
    return {
        "action": data.action,
        "requested": result.requested,
        "succeeded": result.succeeded,
        "failed": result.failed,
    }


@router.put("/{project_id}/tasks/reorder", response_model=ReorderResponse)
async def reorder_tasks(
    project_id: UUID,
    data: ReorderRequest,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
) -> dict[str, int]:
    await get_project_or_404(db, project_id)
    entries = []
    for entry in data.tasks:
        try:
            task_id = UUID(str(entry.get("id")))
        except ValueError:
            continue
        entries.append({"id": task_id, "order_index": entry.get("order_index")})
    updated = await TaskService(db, activity).reorder(project_id, entries)
    return {"updated": updated}


@router.get("/{project_id}/tasks/{task_id}/comments", response_model=list[CommentResponse])
async def list_comments(
    project_id: UUID,
    task_id: UUID,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
):
    """All comments on a task, internal ones included."""
    await get_project_task(db, project_id, task_id)
    return await CommentService(db, activity).list_comments(project_id, task_id)


@router.post(
    "/{project_id}/tasks/{task_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    project_id: UUID,
    task_id: UUID,
    data: CommentCreate,
    _caller: StaffCaller,
    db: DBSession,
    activity: Activity,
):
    await get_project_task(db, project_id, task_id)
    return await CommentService(db, activity).add_comment(
        project_id,
        task_id,
        data.content,
        author_email=data.author_email,
        author_name=data.author_name,
        author_type=ActorType.STAFF,
        is_internal=data.is_internal,
    )
