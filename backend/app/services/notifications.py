# services/notifications.py
"""
Fire-and-forget customer messaging.

Every send goes out on email and SMS independently; a failed or unconfigured
channel is logged and skipped. Nothing here guards against duplicates, so a
caller that dispatches twice sends twice.
"""
import asyncio
import html
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from app.core.config import Settings, settings as default_settings
from app.models.order_model import Order
from app.services import channels
from app.utils.templates import email_layout, render_email, render_sms

logger = logging.getLogger("storefront.notifications")

EmailSender = Callable[[str, str, str], Awaitable[None]]
SmsSender = Callable[[str, str], Awaitable[None]]


def _money(amount: float, currency: str) -> str:
    return f"{currency} {float(amount or 0):,.2f}"


class Notifier:
    def __init__(
        self,
        config: Settings = default_settings,
        email_sender: Optional[EmailSender] = None,
        sms_sender: Optional[SmsSender] = None,
    ):
        self.config = config
        self.email_sender = email_sender or channels.send_via_email
        self.sms_sender = sms_sender or channels.send_via_sms

    # ----------------------------------------------------------------
    # Channel plumbing
    # ----------------------------------------------------------------
    async def _email(self, to: Optional[str], subject: str, body_html: str) -> bool:
        if not to:
            return False
        try:
            await self.email_sender(to, subject, body_html)
            return True
        except channels.ChannelNotConfigured as e:
            logger.debug(f"[Notify] Email skipped: {e}")
        except Exception as e:
            logger.error(f"[Notify] Email to {to} failed: {e}")
        return False

    async def _sms(self, to: Optional[str], message: str) -> bool:
        if not to:
            return False
        try:
            await self.sms_sender(to, message)
            return True
        except channels.ChannelNotConfigured as e:
            logger.debug(f"[Notify] SMS skipped: {e}")
        except Exception as e:
            logger.error(f"[Notify] SMS to {to} failed: {e}")
        return False

    async def _both(self, kind: str, context: Dict[str, Any], email: Optional[str], phone: Optional[str]) -> Dict[str, bool]:
        subject, body = render_email(kind, context, self.config.STORE_NAME)
        sent_email, sent_sms = await asyncio.gather(
            self._email(email, subject, body),
            self._sms(phone, render_sms(kind, context)),
        )
        return {"email": sent_email, "sms": sent_sms}

    def _order_context(self, order: Order) -> Dict[str, Any]:
        return {
            "name": order.customer_name,
            "order_number": order.order_number,
            "amount": _money(order.total, self.config.MOOLRE_CURRENCY),
            "store": self.config.STORE_NAME,
        }

    # ----------------------------------------------------------------
    # Order lifecycle
    # ----------------------------------------------------------------
    async def send_order_confirmation(self, order: Order) -> Dict[str, bool]:
        logger.info(f"[Notify] Order confirmation for {order.order_number}")
        return await self._both("order_confirmation", self._order_context(order), order.email, order.contact_phone)

    async def send_order_status_update(self, order: Order, status: str) -> Dict[str, bool]:
        tracking_number = order.metadata.get("tracking_number")
        context = {
            **self._order_context(order),
            "status": status,
            "tracking": f" Tracking number: {tracking_number}." if tracking_number else "",
        }
        logger.info(f"[Notify] Status '{status}' for {order.order_number}")
        return await self._both("status_update", context, order.email, order.contact_phone)

    async def send_payment_link(self, order: Order) -> Dict[str, bool]:
        base = (self.config.APP_BASE_URL or "").rstrip("/")
        context = {
            **self._order_context(order),
            "link": f"{base}/pay/{order.order_number}",
        }
        logger.info(f"[Notify] Payment link for {order.order_number}")
        return await self._both("payment_link", context, order.email, order.contact_phone)

    # ----------------------------------------------------------------
    # Accounts / contact
    # ----------------------------------------------------------------
    async def send_welcome_message(self, payload: Dict[str, Any]) -> Dict[str, bool]:
        context = {"name": payload.get("name") or "there", "store": self.config.STORE_NAME}
        return await self._both("welcome", context, payload.get("email"), payload.get("phone"))

    async def send_contact_message(self, payload: Dict[str, Any]) -> Dict[str, bool]:
        context = {
            "name": payload.get("name") or "Anonymous",
            "email": payload.get("email") or "",
            "subject": payload.get("subject") or "(no subject)",
            "message": payload.get("message") or "",
        }
        subject, body = render_email("contact", context, self.config.STORE_NAME)
        inbox = self.config.MOOLRE_MERCHANT_EMAIL
        return {"email": await self._email(inbox, subject, body), "sms": False}

    # ----------------------------------------------------------------
    # Campaigns
    # ----------------------------------------------------------------
    async def send_campaign(
        self,
        recipients: Iterable[Dict[str, Any]],
        subject: str,
        message: str,
        channels_enabled: Dict[str, bool],
    ) -> Dict[str, int]:
        seen_emails = set()
        seen_phones = set()
        results = {"email": 0, "sms": 0, "errors": 0}

        paragraphs = "".join(f"<p>{html.escape(line)}</p>" for line in message.split("\n") if line.strip())

        for recipient in recipients:
            email = (recipient.get("email") or "").strip()
            phone = recipient.get("phone") or ""

            if channels_enabled.get("email") and email:
                key = email.lower()
                if key not in seen_emails:
                    seen_emails.add(key)
                    greeting = f"<p>Hi {html.escape(recipient.get('name') or 'Valued Customer')},</p>"
                    body = email_layout(greeting + paragraphs, html.escape(subject), self.config.STORE_NAME)
                    if await self._email(email, subject, body):
                        results["email"] += 1
                    else:
                        results["errors"] += 1

            if channels_enabled.get("sms") and phone:
                key = re.sub(r"[\s\-().]+", "", phone)
                if key not in seen_phones:
                    seen_phones.add(key)
                    if await self._sms(phone, message):
                        results["sms"] += 1
                    else:
                        results["errors"] += 1

        logger.info(f"[Campaign] Sent {results['email']} emails, {results['sms']} SMS, {results['errors']} failed")
        return results


_default_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    global _default_notifier
    if _default_notifier is None:
        _default_notifier = Notifier()
    return _default_notifier
