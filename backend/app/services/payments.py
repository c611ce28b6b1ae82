# services/payments.py
"""
Payment confirmation flow: callback receiver and redirect verification.

Both paths converge on `OrderStore.mark_order_paid`, which is atomic and a
no-op on a paid order. Follow-up work (customer stats, confirmation
messages) runs only for the call that actually applied the transition and
never affects the response.
"""
import hmac
import logging
from typing import Any, Dict, Optional, Tuple

from app.core.config import Settings, settings as default_settings
from app.models.order_model import Order, PaymentTransition
from app.services.callback_parser import GatewayCallback, normalize_callback
from app.services.moolre import MoolreClient
from app.services.notifications import Notifier
from app.services.order_store import OrderStore, OrderStoreError

logger = logging.getLogger("storefront.payments")

AMOUNT_TOLERANCE = 0.01

Result = Tuple[int, Dict[str, Any]]


def _reply(status_code: int, success: bool, message: str, **extra) -> Result:
    return status_code, {"success": success, "message": message, **extra}


class PaymentService:
    def __init__(
        self,
        store: OrderStore,
        notifier: Notifier,
        gateway: MoolreClient,
        config: Settings = default_settings,
    ):
        self.store = store
        self.notifier = notifier
        self.gateway = gateway
        self.config = config

    # ----------------------------------------------------------------
    # Shared follow-up after a successful transition
    # ----------------------------------------------------------------
    async def _after_paid(self, order: Order, tag: str) -> None:
        if order.email:
            try:
                await self.store.update_customer_stats(order.email, order.total)
            except Exception as e:
                logger.error(f"[{tag}] Customer stats failed for {order.order_number}: {e}")

        try:
            await self.notifier.send_order_confirmation(order)
            logger.info(f"[{tag}] Notifications dispatched for {order.order_number}")
        except Exception as e:
            logger.error(f"[{tag}] Notification failed for {order.order_number}: {e}")

    def _secret_ok(self, callback: GatewayCallback) -> bool:
        expected = self.config.MOOLRE_CALLBACK_SECRET
        if not expected:
            return True
        if not callback.secret:
            return False
        return hmac.compare_digest(callback.secret.encode(), expected.encode())

    # ----------------------------------------------------------------
    # Webhook
    # ----------------------------------------------------------------
    async def handle_callback(self, body: Dict[str, Any]) -> Result:
        callback = normalize_callback(body)
        order_number = callback.order_number

        logger.info(
            f"[Callback] order={order_number} | api_status={callback.api_status} | "
            f"tx_status={callback.tx_status} | message={callback.message!r} | ref={callback.gateway_reference}"
        )

        if not order_number:
            logger.error(f"[Callback] Missing order reference | keys={sorted(body.keys()) if isinstance(body, dict) else []}")
            return _reply(400, False, "Missing order reference")

        if not self._secret_ok(callback):
            logger.error(f"[Callback] Secret mismatch for {order_number}. Possible spoofed callback.")
            return _reply(403, False, "Invalid secret")

        try:
            order = await self.store.get_order(order_number)
        except OrderStoreError:
            return _reply(500, False, "Database lookup failed")

        if order is None:
            logger.error(f"[Callback] Order not found: {order_number}")
            return _reply(404, False, "Order not found")

        if order.is_paid:
            logger.info(f"[Callback] Order already paid, skipping: {order_number}")
            return _reply(200, True, "Order already processed")

        if callback.amount is not None and abs(callback.amount - float(order.total)) > AMOUNT_TOLERANCE:
            logger.warning(
                f"[Callback] Amount mismatch for {order_number}! Expected: {order.total} Got: {callback.amount}"
            )

        if not callback.is_success:
            reason = callback.message or "Payment failed"
            logger.info(f"[Callback] Payment FAILED for {order_number} | reason={reason}")
            try:
                await self.store.mark_order_failed(order_number, callback.gateway_reference, reason)
            except OrderStoreError:
                return _reply(500, False, "Database update failed")
            return _reply(200, False, "Payment not successful")

        logger.info(f"[Callback] Payment SUCCESS for {order_number}")
        try:
            transition = await self.store.mark_order_paid(order_number, callback.gateway_reference, verified_via="callback")
        except OrderStoreError:
            return _reply(500, False, "Database update failed")

        if transition is None:
            logger.error(f"[Callback] Order vanished during update: {order_number}")
            return _reply(404, False, "Order not found")

        if transition.applied:
            await self._after_paid(transition.order, "Callback")
        else:
            logger.info(f"[Callback] Concurrent confirmation already applied for {order_number}")

        return _reply(200, True, "Payment verified and Order Updated")

    # ----------------------------------------------------------------
    # Redirect verification
    # ----------------------------------------------------------------
    async def verify(self, order_number: Optional[str], from_redirect: bool) -> Result:
        if not order_number:
            return _reply(400, False, "Missing orderNumber")

        logger.info(f"[Verify] Checking payment for {order_number} | fromRedirect={from_redirect}")

        try:
            order = await self.store.get_order(order_number)
        except OrderStoreError:
            return _reply(500, False, "Internal error")

        if order is None:
            return _reply(404, False, "Order not found")

        if order.is_paid:
            return _reply(200, True, "Order already paid", status=order.status, payment_status=order.payment_status)

        # The gateway only knows the suffixed reference the link was issued under
        external_ref = order.metadata.get("moolre_externalref") or order_number
        gateway_confirmed = await self.gateway.is_payment_confirmed(external_ref)

        if gateway_confirmed:
            source = "moolre-api"
        elif from_redirect and self.config.TRUST_REDIRECT_FALLBACK:
            # Weak evidence: the success URL is not secret and the flag is client supplied
            logger.warning(f"[Verify] Marking {order_number} paid on redirect evidence only")
            source = "redirect-verification"
        else:
            logger.info(f"[Verify] Cannot verify payment for {order_number}")
            return _reply(
                200, False, "Payment not yet confirmed",
                status=order.status, payment_status=order.payment_status,
            )

        try:
            transition: Optional[PaymentTransition] = await self.store.mark_order_paid(order_number, source, verified_via=source)
        except OrderStoreError:
            return _reply(500, False, "Failed to update order")

        if transition is None:
            return _reply(404, False, "Order not found")

        if transition.applied:
            logger.info(f"[Verify] Order {order_number} marked paid via {source}")
            await self._after_paid(transition.order, "Verify")

        return _reply(
            200, True, "Payment verified and order updated",
            status=transition.order.status, payment_status="paid",
        )
