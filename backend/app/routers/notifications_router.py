# routers/notifications_router.py
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.auth import StaffCheck, get_staff_check
from app.core.rate_limit import rate_limit
from app.models.order_model import Order
from app.services.notifications import Notifier, get_notifier
from app.services.order_store import OrderStore, OrderStoreError, get_order_store

router = APIRouter(prefix="/notifications", tags=["Notifications"])
logger = logging.getLogger("storefront.notifications")

STAFF_ONLY = {"campaign", "order_updated", "order_status"}


class NotificationRequest(BaseModel):
    type: str
    payload: Optional[Dict[str, Any]] = None


def _ok(message: str, **extra):
    return {"success": True, "message": message, **extra}


async def _order_for_status(payload: Dict[str, Any], store: OrderStore) -> Order:
    """Admin panel sends a flat payload; prefer the stored order when it exists."""
    order_number = payload.get("orderNumber")
    stored = None
    if order_number:
        try:
            stored = await store.get_order(order_number)
        except OrderStoreError:
            stored = None

    phone = payload.get("phone")
    if stored is not None:
        if not stored.phone and phone:
            stored.phone = phone
        return stored

    return Order(
        order_number=order_number or "",
        email=payload.get("email"),
        phone=phone,
        shipping_address={"firstName": payload.get("name"), "phone": phone},
        metadata={"tracking_number": payload.get("trackingNumber")},
    )


@router.post("", dependencies=[Depends(rate_limit("notification"))])
async def send_notification(
    body: NotificationRequest,
    authorization: Optional[str] = Header(None),
    notifier: Notifier = Depends(get_notifier),
    store: OrderStore = Depends(get_order_store),
    staff_check: StaffCheck = Depends(get_staff_check),
):
    kind = body.type
    payload = body.payload

    if not payload:
        return JSONResponse({"error": "Payload required"}, status_code=400)

    if kind in STAFF_ONLY:
        try:
            await staff_check(authorization)
        except HTTPException as e:
            return JSONResponse({"error": e.detail}, status_code=e.status_code)

    try:
        if kind == "order_created":
            await notifier.send_order_confirmation(Order(**payload))
            return _ok("Order confirmation sent")

        if kind == "order_updated":
            await notifier.send_order_status_update(Order(**payload["order"]), payload["status"])
            return _ok("Status update sent")

        if kind == "order_status":
            order = await _order_for_status(payload, store)
            await notifier.send_order_status_update(order, payload.get("status") or "updated")
            return _ok("Status update sent")

        if kind == "welcome":
            await notifier.send_welcome_message(payload)
            return _ok("Welcome message sent")

        if kind == "contact":
            await notifier.send_contact_message(payload)
            return _ok("Contact message sent")

        if kind == "payment_link":
            await notifier.send_payment_link(Order(**payload))
            return _ok("Payment link sent")

        if kind == "campaign":
            results = await notifier.send_campaign(
                payload.get("recipients") or [],
                payload.get("subject") or "",
                payload.get("message") or "",
                payload.get("channels") or {},
            )
            summary = f"Campaign sent: {results['email']} emails, {results['sms']} SMS."
            if results["errors"]:
                summary += f" ({results['errors']} failed)"
            return _ok(summary, results=results)

    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"[Notifications] Bad {kind} payload: {e}")
        return JSONResponse({"error": f"Invalid payload for {kind}"}, status_code=400)
    except Exception as e:
        logger.error(f"Notification API error: {e}", exc_info=True)
        return JSONResponse({"error": str(e)}, status_code=500)

    return JSONResponse({"error": "Invalid notification type"}, status_code=400)
