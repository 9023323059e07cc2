"""API router package."""

from fastapi import APIRouter

from onboardhub.api.v1 import (
    crm,
    cron,
    documents,
    health,
    portal,
    projects,
    reports,
    stages,
    tags,
    tasks,
    templates,
)

router = APIRouter()

router.include_router(health.router, tags=["Health"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(tasks.router, prefix="/projects", tags=["Tasks"])
router.include_router(stages.router, prefix="/projects", tags=["Stages"])
router.include_router(templates.router, prefix="/templates", tags=["Templates"])
router.include_router(documents.router, prefix="/documents", tags=["Documents"])
router.include_router(tags.router, prefix="/tags", tags=["Tags"])
router.include_router(portal.router, prefix="/portal", tags=["Portal"])
router.include_router(crm.router, prefix="/crm", tags=["CRM"])
router.include_router(cron.router, prefix="/cron", tags=["Cron"])
router.include_router(reports.router, tags=["Reports"])
