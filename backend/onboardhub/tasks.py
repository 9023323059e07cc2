"""Celery background tasks."""

import asyncio

import structlog

from onboardhub.worker import celery_app

logger = structlog.get_logger()


@celery_app.task(bind=True, name="onboardhub.tasks.send_task_reminders")
def send_task_reminders(self) -> dict:
    """
    Mail every client with external tasks due within the reminder window.

    Scheduled daily by Celery Beat. Not retried: a failed run is picked up
    by the next day's run, and retrying could mail clients twice.
    """
    async def _process():
        from onboardhub.config import get_settings
        from onboardhub.db.session import async_session_factory, engine
        from onboardhub.services.email import Mailer
        from onboardhub.services.reminders import ReminderService

        settings = get_settings()
        try:
            async with async_session_factory() as db:
                service = ReminderService(db, Mailer(settings), settings)
                summary = await service.send_reminders()
                return summary.to_dict()
        finally:
            # Pooled connections belong to this event loop
            await engine.dispose()

    try:
        summary = asyncio.run(_process())
        logger.info(
            "task_reminders_processed",
            attempted=summary["attempted"],
            sent=summary["sent"],
        )
        return {
            "status": "success",
            "total_projects": summary["total_projects"],
            "attempted": summary["attempted"],
            "sent": summary["sent"],
        }
    except Exception as e:
        logger.error("task_reminders_failed", error=str(e))
        return {"status": "error", "error": str(e)}
