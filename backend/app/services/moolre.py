# services/moolre.py
import re
import time
import logging
from typing import Any, Dict, Optional

import httpx
from app.core.config import Settings, settings as default_settings

logger = logging.getLogger("storefront.moolre")

RETRY_SUFFIX = re.compile(r"-R\d+$")

# The status API has no single success enum
STATUS_SUCCESS_WORDS = {"success", "successful", "completed", "paid"}


class MoolreError(Exception):
    """Payment link could not be created. Message is safe to show the shopper."""


def build_external_ref(order_id: str, now_ms: Optional[int] = None) -> str:
    """`ORD-5` → `ORD-5-R1700000000000`. The suffix keeps retries distinct at the gateway."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{order_id}-R{now_ms}"


def strip_retry_suffix(external_ref: str) -> str:
    return RETRY_SUFFIX.sub("", external_ref)


def resolve_base_url(configured: Optional[str], request_origin: str) -> str:
    return (configured or request_origin).rstrip("/")


def _is_one(value: Any) -> bool:
    return value == 1 or value == "1"


class MoolreClient:
    def __init__(self, config: Settings = default_settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    @property
    def configured(self) -> bool:
        return self.config.moolre_configured

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-API-USER": self.config.MOOLRE_API_USER or "",
            "X-API-PUBKEY": self.config.MOOLRE_API_PUBKEY or "",
        }

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.MOOLRE_BASE_URL,
            timeout=timeout,
            transport=self.transport,
        )

    async def create_payment_link(
        self,
        order_id: str,
        amount: float,
        customer_email: Optional[str],
        base_url: str,
    ) -> Dict[str, str]:
        """
        Request a hosted payment page for an order.
        Returns {"url", "reference", "externalref"}; raises MoolreError on any
        gateway refusal. Never retries.
        """
        if not self.configured:
            raise MoolreError("Payment gateway configuration error")

        external_ref = build_external_ref(order_id)
        payload = {
            "type": 1,
            "amount": str(amount),
            "email": self.config.MOOLRE_MERCHANT_EMAIL,
            "externalref": external_ref,
            "callback": f"{base_url}/api/payment/moolre/callback",
            "redirect": f"{base_url}/order-success?order={order_id}&payment_success=true",
            "reusable": "0",
            "currency": self.config.MOOLRE_CURRENCY,
            "accountnumber": self.config.MOOLRE_ACCOUNT_NUMBER,
            "metadata": {
                "customer_email": customer_email,
                "original_order_number": order_id,
            },
        }

        logger.info(
            f"[Payment] Initiating | order={order_id} | amount={amount} | callback={payload['callback']}"
        )

        async with self._client(timeout=15.0) as client:
            response = await client.post("/embed/link", json=payload, headers=self._headers())

        try:
            result = response.json()
        except ValueError:
            logger.error(f"[Payment] Non-JSON gateway response {response.status_code} | {response.text[:200]}")
            raise MoolreError("Failed to generate payment link")

        if not isinstance(result, dict):
            raise MoolreError("Failed to generate payment link")

        data = result.get("data") or {}
        logger.info(
            f"[Payment] Gateway status={result.get('status')} | has_url={bool(data.get('authorization_url'))}"
        )

        if _is_one(result.get("status")) and data.get("authorization_url"):
            return {
                "url": data["authorization_url"],
                "reference": data.get("reference"),
                "externalref": external_ref,
            }

        raise MoolreError(result.get("message") or "Failed to generate payment link")

    async def is_payment_confirmed(self, external_ref: str) -> bool:
        """
        Ask the status API whether a transaction completed.
        Any error or unrecognised answer is inconclusive and returns False.
        """
        if not (self.config.MOOLRE_API_USER and self.config.MOOLRE_API_PUBKEY):
            return False

        try:
            async with self._client(timeout=10.0) as client:
                response = await client.post(
                    "/embed/status",
                    json={"externalref": external_ref},
                    headers=self._headers(),
                )
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[Verify] Moolre status check failed for {external_ref}: {e}")
            return False

        logger.info(f"[Verify] Moolre status response for {external_ref}: {result}")

        data = result.get("data") if isinstance(result, dict) else None
        if not isinstance(data, dict):
            return False

        status_str = str(data.get("status") or "").strip().lower()
        return (
            status_str in STATUS_SUCCESS_WORDS
            or _is_one(data.get("txstatus"))
            or _is_one(data.get("txtstatus"))
        )


def get_moolre_client() -> MoolreClient:
    return MoolreClient()
