from celery import Celery
from celery.schedules import crontab
from app.core.config import settings

celery_app = Celery(
    "storefront",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["app.tasks.reminder_celery"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    broker_connection_retry_on_startup=True,
)

celery_app.conf.beat_schedule = {
    "send-payment-reminders": {
        "task": "app.tasks.reminder_celery.payment_reminders_task",
        "schedule": crontab(minute="*/5"),
    },
}
