from celery import Celery
from celery.schedules import crontab

from app.core.config import settings

celery_app = Celery(
    "compliance",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["app.tasks.compliance_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Europe/Berlin",
    enable_utc=True,
    beat_schedule={
        # Täglich um 02:30: Verstöße des Vortags für alle Tenants erkennen
        "nightly-compliance-detection": {
            "task": "app.tasks.compliance_tasks.detect_recent_violations",
            "schedule": crontab(hour=2, minute=30),
        },
    },
)
