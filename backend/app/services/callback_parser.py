# services/callback_parser.py
"""
Translation layer for Moolre callbacks.

The gateway posts JSON, form data or bare text depending on the integration
point, and the interesting fields move between the top level and a nested
``data`` object. Everything that knows about that shape lives here: the rest
of the app only sees ``GatewayCallback``.

Observed payload::

    {
      "status": 1,
      "code": "P01",
      "message": "Transaction Successful",
      "data": {
        "txtstatus": 1,
        "payer": "233535998837",
        "accountnumber": "10789906062911",
        "amount": "2",
        "transactionid": "42252702",
        "externalref": "ORD-1770330034217-441-R1770330034999",
        "thirdpartyref": "74658410493"
      },
      "secret": "c23bc2ab-...",
      "ts": "2026-02-05 22:21:16"
    }
"""
import json
import logging
import re
from typing import Any, Dict, Optional, Sequence
from urllib.parse import parse_qsl

from fastapi import Request
from pydantic import BaseModel

from app.services.moolre import strip_retry_suffix

logger = logging.getLogger("storefront.callback")

SUCCESS_KEYWORDS = ("successful", "success", "completed", "paid")
NEGATION = re.compile(r"\b(unsuccessful|not|failed|failure|declined|cancell?ed|rejected)\b")

EXTERNAL_REF_KEYS = (
    ("data", "externalref"),
    ("data", "external_reference"),
    ("data", "orderRef"),
    ("externalref",),
    ("orderRef",),
    ("external_reference",),
)
ORIGINAL_ORDER_KEYS = (
    ("data", "metadata", "original_order_number"),
    ("metadata", "original_order_number"),
)
GATEWAY_REF_KEYS = (
    ("data", "transactionid"),
    ("data", "thirdpartyref"),
    ("reference",),
)
AMOUNT_KEYS = (
    ("data", "amount"),
    ("amount",),
)


class GatewayCallback(BaseModel):
    order_number: Optional[str] = None
    external_ref: Optional[str] = None
    gateway_reference: str = "callback"
    api_status: Any = None
    tx_status: Any = None
    message: str = ""
    amount: Optional[float] = None
    secret: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return (
            _is_one(self.api_status)
            or _is_one(self.tx_status)
            or message_signals_success(self.message)
        )


def _is_one(value: Any) -> bool:
    return value == 1 or value == "1"


def message_signals_success(message: str) -> bool:
    text = (message or "").lower()
    if not any(word in text for word in SUCCESS_KEYWORDS):
        return False
    return NEGATION.search(text) is None


def _dig(body: Dict[str, Any], path: Sequence[str]) -> Any:
    node: Any = body
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _first(body: Dict[str, Any], paths) -> Any:
    for path in paths:
        value = _dig(body, path)
        if value not in (None, ""):
            return value
    return None


def _to_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def normalize_callback(body: Dict[str, Any]) -> GatewayCallback:
    """Resolve every field of interest in a fixed priority order."""
    if not isinstance(body, dict):
        body = {}

    # Form-encoded callbacks carry `data` as a JSON string
    if isinstance(body.get("data"), str):
        try:
            decoded = json.loads(body["data"])
            if isinstance(decoded, dict):
                body = {**body, "data": decoded}
        except ValueError:
            pass

    raw_ref = _first(body, EXTERNAL_REF_KEYS)
    order_number = None
    if raw_ref is not None:
        raw_ref = str(raw_ref).strip()
        order_number = strip_retry_suffix(raw_ref) or None
    if not order_number:
        fallback = _first(body, ORIGINAL_ORDER_KEYS)
        order_number = str(fallback).strip() if fallback is not None else None

    gateway_ref = _first(body, GATEWAY_REF_KEYS)
    secret = body.get("secret")

    return GatewayCallback(
        order_number=order_number or None,
        external_ref=raw_ref,
        gateway_reference=str(gateway_ref) if gateway_ref is not None else "callback",
        api_status=body.get("status"),
        tx_status=_dig(body, ("data", "txtstatus")),
        message=str(body.get("message") or ""),
        amount=_to_float(_first(body, AMOUNT_KEYS)),
        secret=str(secret) if secret is not None else None,
    )


def decode_text_body(raw: str) -> Dict[str, Any]:
    """Bare text: JSON first, then query-string. Anything else is an empty payload."""
    raw = (raw or "").strip()
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
        return parsed if isinstance(parsed, dict) else {}
    except ValueError:
        pass
    try:
        return dict(parse_qsl(raw, keep_blank_values=True, strict_parsing=True))
    except ValueError:
        logger.warning("[Callback] Could not parse body")
        return {}


async def read_callback_body(request: Request) -> Dict[str, Any]:
    content_type = (request.headers.get("content-type") or "").lower()
    try:
        if "application/json" in content_type:
            parsed = json.loads((await request.body()) or b"{}")
            return parsed if isinstance(parsed, dict) else {}
        if "form" in content_type:
            form = await request.form()
            return {key: value for key, value in form.items() if isinstance(value, str)}
        raw = await request.body()
        return decode_text_body(raw.decode("utf-8", errors="replace"))
    except Exception as e:
        logger.warning(f"[Callback] Body parsing failed ({content_type or 'no content-type'}): {e}")
        return {}
