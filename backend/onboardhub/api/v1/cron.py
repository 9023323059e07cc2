"""Scheduler-triggered jobs (cron secret or admin key)."""

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from onboardhub.api.deps import DBSession, MailerDep, SettingsDep, require_scheduler
from onboardhub.services.reminders import ReminderService

router = APIRouter()


class ReminderResultResponse(BaseModel):
    project_id: UUID
    project_name: str
    client_email: str
    task_count: int
    sent: bool
    email_id: str | None


class ReminderRunResponse(BaseModel):
    message: str
    total_projects: int
    attempted: int
    sent: int
    results: list[ReminderResultResponse]


@router.post(
    "/reminders",
    response_model=ReminderRunResponse,
    dependencies=[Depends(require_scheduler)],
)
async def send_reminders(db: DBSession, mailer: MailerDep, settings: SettingsDep) -> dict[str, Any]:
    """Send one reminder per project with client tasks due soon or overdue."""
    summary = await ReminderService(db, mailer, settings).send_reminders()
    return {"message": f"Sent {summary.sent} reminder emails", **summary.to_dict()}
