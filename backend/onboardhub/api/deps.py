"""Shared API dependencies: settings, caller authentication and collaborators."""

from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from onboardhub.config import Settings, get_settings
from onboardhub.db.session import get_db_session
from onboardhub.models.activity import ActorType
from onboardhub.models.project import Project
from onboardhub.services.access_control import (
    authenticate_portal,
    authenticate_scheduler,
    authenticate_staff,
)
from onboardhub.services.activity import ActivityLogger
from onboardhub.services.email import Mailer
from onboardhub.services.storage import BlobStore

SettingsDep = Annotated[Settings, Depends(get_settings)]
DBSession = Annotated[AsyncSession, Depends(get_db_session)]


def extract_api_key(authorization: str | None, x_api_key: str | None) -> str | None:
    """Read a secret from ``Authorization: Bearer ...`` or ``X-API-Key``."""
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials:
            return credentials.strip()
    return x_api_key


async def require_staff(
    settings: SettingsDep,
    authorization: Annotated[str | None, Header()] = None,
    x_api_key: Annotated[str | None, Header()] = None,
) -> ActorType:
    return authenticate_staff(extract_api_key(authorization, x_api_key), settings)


async def require_crm(
    settings: SettingsDep,
    authorization: Annotated[str | None, Header()] = None,
    x_api_key: Annotated[str | None, Header()] = None,
) -> ActorType:
    """Accept the CRM key or the admin key."""
    return authenticate_staff(
        extract_api_key(authorization, x_api_key), settings, allow_crm=True
    )


async def require_scheduler(
    settings: SettingsDep,
    x_cron_secret: Annotated[str | None, Header()] = None,
    authorization: Annotated[str | None, Header()] = None,
    x_api_key: Annotated[str | None, Header()] = None,
) -> None:
    authenticate_scheduler(x_cron_secret, extract_api_key(authorization, x_api_key), settings)


async def get_portal_project(token: str, db: DBSession, settings: SettingsDep) -> Project:
    """Resolve the ``{token}`` path parameter on every portal request."""
    return await authenticate_portal(db, token, settings)


def get_activity_logger(request: Request) -> ActivityLogger:
    return request.app.state.activity


def get_mailer(settings: SettingsDep) -> Mailer:
    return Mailer(settings)


def get_storage(settings: SettingsDep) -> BlobStore:
    return BlobStore(settings)


StaffCaller = Annotated[ActorType, Depends(require_staff)]
CrmCaller = Annotated[ActorType, Depends(require_crm)]
PortalProject = Annotated[Project, Depends(get_portal_project)]
Activity = Annotated[ActivityLogger, Depends(get_activity_logger)]
MailerDep = Annotated[Mailer, Depends(get_mailer)]
StorageDep = Annotated[BlobStore, Depends(get_storage)]
