import asyncio
import re
import httpx
import logging
import resend
from typing import Optional

from app.core.config import settings


logger = logging.getLogger("storefront")

SMS_SEND_PATH = "/open/sms/send"


class ChannelNotConfigured(RuntimeError):
    pass


# -------------------------------------------------------------------
# SMS (Moolre)
# -------------------------------------------------------------------

def normalize_ghana_phone(phone: str) -> str:
    """
    0241234567 → +233241234567
    241234567  → +233241234567
    +233 24 123 4567 → +233241234567
    """
    cleaned = re.sub(r"\D", "", phone or "")
    if cleaned.startswith("0"):
        cleaned = "233" + cleaned[1:]
    if not cleaned.startswith("233") and len(cleaned) == 9:
        cleaned = "233" + cleaned
    return "+" + cleaned


async def send_via_sms(phone: str, message: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
    """
    Send SMS via the Moolre SMS API.
    Raises exception on ANY failure.
    """
    if not settings.MOOLRE_SMS_API_KEY:
        raise ChannelNotConfigured("MOOLRE_SMS_API_KEY is not set")

    recipient = normalize_ghana_phone(phone)
    if len(recipient) < 8:
        raise RuntimeError(f"Invalid phone number: {phone}")

    payload = {
        "type": 1,
        "senderid": settings.SMS_SENDER_ID,
        "messages": [{"recipient": recipient, "message": message}],
    }
    headers = {
        "Content-Type": "application/json",
        "X-API-VASKEY": settings.MOOLRE_SMS_API_KEY,
    }

    logger.info(f"[SMS] Attempting send | phone={recipient} | chars={len(message)}")

    try:
        async with httpx.AsyncClient(
            base_url=settings.MOOLRE_BASE_URL, timeout=15.0, transport=transport
        ) as client:
            response = await client.post(SMS_SEND_PATH, json=payload, headers=headers)
    except httpx.TimeoutException as e:
        logger.error(f"[SMS] Timeout error | phone={recipient} | error={e}")
        raise RuntimeError("Moolre SMS timeout")
    except httpx.RequestError as e:
        logger.error(f"[SMS] Request error | phone={recipient} | error={e}")
        raise RuntimeError(f"Moolre SMS request failed: {str(e)}")

    if response.status_code >= 400:
        logger.error(f"[SMS] HTTP error {response.status_code} | {response.text}")
        raise RuntimeError(f"Moolre SMS HTTP failure: {response.status_code}")

    try:
        data = response.json()
    except ValueError:
        logger.error(f"[SMS] Response not JSON | {response.text[:200]}")
        raise RuntimeError("Moolre SMS response not valid JSON")

    if not (isinstance(data, dict) and data.get("status") in (1, "1")):
        logger.error(f"[SMS] Rejected by Moolre | response={data}")
        message_text = data.get("message", "Unknown error") if isinstance(data, dict) else "Unknown error"
        raise RuntimeError(f"Moolre SMS rejected: {message_text}")

    logger.info(f"[SMS] Delivered | phone={recipient}")


# -------------------------------------------------------------------
# Email (Resend)
# -------------------------------------------------------------------

async def send_via_email(email: str, subject: str, html: str) -> None:
    """
    Send email via Resend.
    Raises exception on ANY failure.
    """
    if not settings.RESEND_API_KEY:
        raise ChannelNotConfigured("RESEND_API_KEY is not set")

    resend.api_key = settings.RESEND_API_KEY
    from_email = settings.EMAIL_FROM

    logger.info(f"[Email] Attempting send | to={email} | subject={subject}")

    loop = asyncio.get_running_loop()

    try:
        result = await loop.run_in_executor(
            None,
            lambda: resend.Emails.send(
                {
                    "from": from_email,
                    "to": email,
                    "subject": subject,
                    "html": html,
                }
            ),
        )
        logger.info(f"[Email] Delivered | to={email} | result={result}")

    except Exception as e:
        logger.error(f"[Email] Failed | to={email} | error={e}")
        raise RuntimeError(f"Email send failed: {str(e)}")
