# tasks/payment_reminders.py
import logging
from datetime import datetime
from typing import Dict, Optional

from app.core.config import settings
from app.services.notifications import Notifier
from app.services.order_store import OrderStore, reminder_cutoff

logger = logging.getLogger("storefront.reminders")


async def send_payment_reminders(
    store: OrderStore,
    notifier: Notifier,
    now: Optional[datetime] = None,
    delay_minutes: Optional[int] = None,
    batch_size: Optional[int] = None,
) -> Dict[str, int]:
    """
    Send one payment-link reminder to each unpaid order older than the delay.
    Orders are flagged once at least one channel delivered, so the next run
    skips them; orders nobody could be reached for stay eligible.
    """
    delay = settings.PAYMENT_REMINDER_DELAY_MINUTES if delay_minutes is None else delay_minutes
    limit = settings.PAYMENT_REMINDER_BATCH_SIZE if batch_size is None else batch_size

    orders = await store.list_orders_due_reminder(reminder_cutoff(delay, now), limit)
    if not orders:
        logger.info("[Payment Reminders] No pending reminders to send")
        return {"processed": 0, "sent": 0, "failed": 0}

    logger.info(f"[Payment Reminders] Found {len(orders)} orders to remind")

    sent = 0
    failed = 0
    for order in orders:
        try:
            delivered = await notifier.send_payment_link(order)
            if not any(delivered.values()):
                # Left unflagged so the next run tries again
                failed += 1
                logger.warning(f"[Payment Reminders] No channel delivered for order {order.order_number}")
                continue
            await store.mark_reminder_sent(order)
            sent += 1
            logger.info(f"[Payment Reminders] Sent reminder for order {order.order_number}")
        except Exception as e:
            failed += 1
            logger.error(f"[Payment Reminders] Failed for order {order.order_number}: {e}")

    return {"processed": len(orders), "sent": sent, "failed": failed}
