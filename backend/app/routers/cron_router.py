# routers/cron_router.py
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.services.notifications import Notifier, get_notifier
from app.services.order_store import OrderStore, get_order_store
from app.tasks.payment_reminders import send_payment_reminders

router = APIRouter(prefix="/cron", tags=["Cron"])
logger = logging.getLogger("storefront.reminders")


def _authorized(authorization: Optional[str]) -> bool:
    if not settings.CRON_SECRET:
        return True
    expected = f"Bearer {settings.CRON_SECRET}"
    return hmac.compare_digest((authorization or "").encode(), expected.encode())


@router.get("/payment-reminders")
async def payment_reminders(
    authorization: Optional[str] = Header(None),
    store: OrderStore = Depends(get_order_store),
    notifier: Notifier = Depends(get_notifier),
):
    if not _authorized(authorization):
        return JSONResponse({"error": "Unauthorized"}, status_code=401)

    try:
        result = await send_payment_reminders(store, notifier)
    except Exception as e:
        logger.error(f"[Payment Reminders] Error: {e}", exc_info=True)
        return JSONResponse({"error": str(e)}, status_code=500)

    if not result["processed"]:
        return {"success": True, "message": "No pending reminders to send", "processed": 0}

    return {
        "success": True,
        "message": f"Processed {result['processed']} orders",
        "sent": result["sent"],
        "failed": result["failed"],
    }
