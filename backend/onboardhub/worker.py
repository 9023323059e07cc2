"""Celery worker configuration."""

from celery import Celery
from celery.schedules import crontab

from onboardhub.config import get_settings

settings = get_settings()

celery_app = Celery(
    "onboardhub",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # 5 minutes
    task_soft_time_limit=240,  # 4 minutes
    beat_schedule={
        "send-task-reminders-daily": {
            "task": "onboardhub.tasks.send_task_reminders",
            "schedule": crontab(hour=settings.reminder_schedule_hour, minute=0),
        },
    },
)

# Auto-discover tasks from onboardhub.tasks module
celery_app.autodiscover_tasks(["onboardhub"])
