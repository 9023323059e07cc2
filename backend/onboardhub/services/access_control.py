"""Access gate for staff, CRM and client portal callers.

Staff and CRM callers present a shared secret. Clients present the
project's ``public_token``; the token is resolved to a project on every
call and every sub-resource is re-checked against that project, so a
guessed task or signature id from another project fails closed.
"""

import secrets
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.config import Settings
from onboardhub.exceptions import NotFoundError, UnauthorizedError
from onboardhub.models.activity import ActorType
from onboardhub.models.document import Signature
from onboardhub.models.project import PORTAL_HIDDEN_STATUSES, Project, Task

logger = structlog.get_logger()

PORTAL_NOT_FOUND = "Invalid or expired portal link"


def _matches(provided: str, expected: str) -> bool:
    if not expected:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


def authenticate_staff(
    secret: str | None,
    settings: Settings,
    allow_crm: bool = False,
) -> ActorType:
    """
    Validate a staff (admin) or CRM secret.

    Returns:
        ActorType.STAFF for the admin key, ActorType.CRM for the CRM key

    Raises:
        UnauthorizedError if the secret is missing or matches no configured key
    """
    if not secret:
        raise UnauthorizedError("Missing API key")

    if _matches(secret, settings.admin_api_key.get_secret_value()):
        return ActorType.STAFF
    if allow_crm and _matches(secret, settings.crm_api_key.get_secret_value()):
        return ActorType.CRM

    logger.warning("staff_auth_rejected", allow_crm=allow_crm)
    raise UnauthorizedError("Invalid API key")


def authenticate_scheduler(
    cron_secret: str | None,
    api_key: str | None,
    settings: Settings,
) -> None:
    """Accept either the cron secret or the admin key."""
    if cron_secret and _matches(cron_secret, settings.cron_secret.get_secret_value()):
        return
    if api_key and _matches(api_key, settings.admin_api_key.get_secret_value()):
        return
    raise UnauthorizedError("Unauthorized")


async def authenticate_portal(
    db: AsyncSession,
    token: str | None,
    settings: Settings,
) -> Project:
    """Resolve a portal token to its project.

    Unknown, malformed and hidden-project tokens all raise the same
    NotFoundError; callers cannot tell them apart.
    """
    if not token or len(token) < settings.portal_token_min_length:
        raise NotFoundError("Project", PORTAL_NOT_FOUND)

    result = await db.execute(
        select(Project).where(Project.public_token == token).limit(1)
    )
    project = result.scalar_one_or_none()

    if project is None or project.status in PORTAL_HIDDEN_STATUSES:
        logger.info("portal_token_rejected")
        raise NotFoundError("Project", PORTAL_NOT_FOUND)

    return project


async def get_project_or_404(db: AsyncSession, project_id: UUID) -> Project:
    """Load a project by id for staff callers."""
    result = await db.execute(select(Project).where(Project.id == project_id))
    project = result.scalar_one_or_none()
    if project is None:
        raise NotFoundError("Project")
    return project


async def get_project_task(
    db: AsyncSession,
    project_id: UUID,
    task_id: UUID,
    external_only: bool = False,
) -> Task:
    """Load a task, requiring it to belong to ``project_id``."""
    query = select(Task).where(Task.id == task_id, Task.project_id == project_id)
    if external_only:
        query = query.where(Task.visibility == "external")
    result = await db.execute(query.limit(1))
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFoundError("Task")
    return task


async def get_portal_task(db: AsyncSession, project: Project, task_id: UUID) -> Task:
    """Load an external task of the token's project."""
    return await get_project_task(db, project.id, task_id, external_only=True)


async def get_portal_signature(
    db: AsyncSession,
    project: Project,
    signature_id: UUID,
) -> Signature:
    """Load a signature of the token's project."""
    result = await db.execute(
        select(Signature)
        .where(Signature.id == signature_id, Signature.project_id == project.id)
        .limit(1)
    )
    signature = result.scalar_one_or_none()
    if signature is None:
        raise NotFoundError("Signature")
    return signature
