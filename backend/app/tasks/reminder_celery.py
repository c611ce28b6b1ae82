import asyncio
import logging

from app.core.celery_app import celery_app
from app.services.notifications import get_notifier
from app.services.order_store import get_order_store
from app.tasks.payment_reminders import send_payment_reminders

logger = logging.getLogger("storefront.reminders")


@celery_app.task(name="app.tasks.reminder_celery.payment_reminders_task")
def payment_reminders_task():
    """
    Wrapper to run the async reminder sweep in a sync Celery worker.
    Not retried: unsent orders are picked up on the next beat.
    """
    result = asyncio.run(send_payment_reminders(get_order_store(), get_notifier()))
    logger.info(f"[Payment Reminders] Beat run finished: {result}")
    return result
