import asyncio
import json

import httpx
import pytest
from fastapi import HTTPException

from app.core.auth import get_staff_check
from app.core.config import Settings, settings
from app.models.order_model import Order
from app.services import channels
from app.services.notifications import Notifier

NOTIFY = "/api/notifications"


class Outbox:
    def __init__(self, fail_email=False, fail_sms=False):
        self.fail_email = fail_email
        self.fail_sms = fail_sms
        self.emails = []
        self.sms = []

    async def email(self, to, subject, body):
        if self.fail_email:
            raise RuntimeError("resend down")
        self.emails.append((to, subject, body))

    async def text(self, to, message):
        if self.fail_sms:
            raise RuntimeError("sms down")
        self.sms.append((to, message))


def _notifier(outbox, **overrides):
    config = Settings(STORE_NAME="Kente & Co", APP_BASE_URL="https://shop.example.com/", **overrides)
    return Notifier(config=config, email_sender=outbox.email, sms_sender=outbox.text)


def _order(**fields):
    base = {
        "order_number": "ORD-1",
        "total": 120,
        "email": "ama@example.com",
        "shipping_address": {"firstName": "Ama", "phone": "0241234567"},
    }
    base.update(fields)
    return Order(**base)


# ----------------------------------------------------------------
# Channels
# ----------------------------------------------------------------
@pytest.mark.parametrize(
    "raw,expected",
    [
        ("0241234567", "+233241234567"),
        ("241234567", "+233241234567"),
        ("+233 24 123 4567", "+233241234567"),
        ("233-24-123-4567", "+233241234567"),
    ],
)
def test_ghana_phone_normalization(raw, expected):
    assert channels.normalize_ghana_phone(raw) == expected


def test_sms_posts_to_moolre(monkeypatch):
    monkeypatch.setattr(settings, "MOOLRE_SMS_API_KEY", "vas-key")
    monkeypatch.setattr(settings, "SMS_SENDER_ID", "KenteCo")
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers["X-API-VASKEY"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": 1})

    asyncio.run(channels.send_via_sms("0241234567", "hello", transport=httpx.MockTransport(handler)))

    assert seen["url"].endswith("/open/sms/send")
    assert seen["key"] == "vas-key"
    assert seen["body"]["senderid"] == "KenteCo"
    assert seen["body"]["messages"] == [{"recipient": "+233241234567", "message": "hello"}]


def test_sms_rejection_raises(monkeypatch):
    monkeypatch.setattr(settings, "MOOLRE_SMS_API_KEY", "vas-key")

    def handler(request):
        return httpx.Response(200, json={"status": 0, "message": "Insufficient balance"})

    with pytest.raises(RuntimeError, match="Insufficient balance"):
        asyncio.run(channels.send_via_sms("0241234567", "hello", transport=httpx.MockTransport(handler)))


def test_unconfigured_channels_raise(monkeypatch):
    monkeypatch.setattr(settings, "MOOLRE_SMS_API_KEY", None)
    monkeypatch.setattr(settings, "RESEND_API_KEY", None)
    with pytest.raises(channels.ChannelNotConfigured):
        asyncio.run(channels.send_via_sms("0241234567", "hi"))
    with pytest.raises(channels.ChannelNotConfigured):
        asyncio.run(channels.send_via_email("a@b.com", "s", "<p>x</p>"))


# ----------------------------------------------------------------
# Notifier
# ----------------------------------------------------------------
def test_order_confirmation_goes_to_both_channels():
    outbox = Outbox()

    result = asyncio.run(_notifier(outbox).send_order_confirmation(_order()))

    assert result == {"email": True, "sms": True}
    to, subject, body = outbox.emails[0]
    assert to == "ama@example.com"
    assert subject == "Order ORD-1 confirmed"
    assert "GHS 120.00" in body
    assert "Kente &amp; Co" in body
    assert outbox.sms[0][0] == "0241234567"
    assert "ORD-1" in outbox.sms[0][1]


def test_one_channel_failing_does_not_block_the_other():
    outbox = Outbox(fail_email=True)

    result = asyncio.run(_notifier(outbox).send_order_confirmation(_order()))

    assert result == {"email": False, "sms": True}
    assert len(outbox.sms) == 1


def test_missing_contact_details_skip_channels():
    outbox = Outbox()

    result = asyncio.run(_notifier(outbox).send_order_confirmation(_order(email=None, shipping_address={})))

    assert result == {"email": False, "sms": False}
    assert outbox.emails == [] and outbox.sms == []


def test_status_update_includes_tracking():
    outbox = Outbox()
    order = _order(metadata={"tracking_number": "GH123"})

    asyncio.run(_notifier(outbox).send_order_status_update(order, "shipped"))

    assert "shipped" in outbox.sms[0][1]
    assert "GH123" in outbox.sms[0][1]


def test_payment_link_points_at_pay_page():
    outbox = Outbox()

    asyncio.run(_notifier(outbox).send_payment_link(_order()))

    assert "https://shop.example.com/pay/ORD-1" in outbox.sms[0][1]
    assert 'href="https://shop.example.com/pay/ORD-1"' in outbox.emails[0][2]


def test_contact_message_goes_to_merchant_inbox():
    outbox = Outbox()
    notifier = _notifier(outbox, MOOLRE_MERCHANT_EMAIL="owner@example.com")

    asyncio.run(notifier.send_contact_message({"name": "<Kojo>", "email": "k@example.com", "message": "Hi"}))

    to, subject, body = outbox.emails[0]
    assert to == "owner@example.com"
    assert "&lt;Kojo&gt;" in body
    assert outbox.sms == []


def test_campaign_dedupes_recipients():
    outbox = Outbox()
    recipients = [
        {"name": "Ama", "email": "Ama@Example.com", "phone": "024 123 4567"},
        {"name": "Ama again", "email": "ama@example.com", "phone": "0241234567"},
        {"name": "Kofi", "email": "kofi@example.com", "phone": None},
    ]

    results = asyncio.run(
        _notifier(outbox).send_campaign(recipients, "Sale", "Big sale\nToday only", {"email": True, "sms": True})
    )

    assert results == {"email": 2, "sms": 1, "errors": 0}
    assert "<p>Big sale</p><p>Today only</p>" in outbox.emails[0][2]


def test_campaign_counts_failures():
    outbox = Outbox(fail_sms=True)

    results = asyncio.run(
        _notifier(outbox).send_campaign([{"phone": "0241234567"}], "Sale", "hi", {"email": True, "sms": True})
    )

    assert results == {"email": 0, "sms": 0, "errors": 1}


# ----------------------------------------------------------------
# Router
# ----------------------------------------------------------------
def _staff(outcome):
    async def check(authorization):
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return check


def test_public_types_need_no_auth(client, notifier):
    resp = client.post(NOTIFY, json={"type": "welcome", "payload": {"name": "Ama", "email": "ama@example.com"}})
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert notifier.welcomes == [{"name": "Ama", "email": "ama@example.com"}]


def test_order_created_dispatches_confirmation(client, notifier):
    resp = client.post(NOTIFY, json={"type": "order_created", "payload": {"order_number": "ORD-3", "total": 10}})
    assert resp.status_code == 200
    assert notifier.confirmations == ["ORD-3"]


def test_staff_types_reject_anonymous(client, app_instance, notifier):
    app_instance.dependency_overrides[get_staff_check] = lambda: _staff(HTTPException(status_code=401, detail="Unauthorized"))

    resp = client.post(NOTIFY, json={"type": "campaign", "payload": {"recipients": []}})

    assert resp.status_code == 401
    assert notifier.campaigns == []


def test_staff_types_reject_customers(client, app_instance):
    app_instance.dependency_overrides[get_staff_check] = lambda: _staff(
        HTTPException(status_code=403, detail="Forbidden - Admin access required")
    )

    resp = client.post(NOTIFY, json={"type": "order_status", "payload": {"orderNumber": "ORD-1", "status": "shipped"}})

    assert resp.status_code == 403
    assert resp.json() == {"error": "Forbidden - Admin access required"}


def test_campaign_for_staff(client, app_instance, notifier):
    app_instance.dependency_overrides[get_staff_check] = lambda: _staff({"uid": "u1", "role": "admin"})

    resp = client.post(
        NOTIFY,
        headers={"Authorization": "Bearer token"},
        json={"type": "campaign", "payload": {"recipients": [{"email": "a@b.com"}], "subject": "S", "message": "M", "channels": {"email": True}}},
    )

    assert resp.status_code == 200
    assert resp.json()["message"] == "Campaign sent: 1 emails, 0 SMS."
    assert len(notifier.campaigns) == 1


def test_order_status_prefers_stored_order(client, app_instance, notifier, store):
    app_instance.dependency_overrides[get_staff_check] = lambda: _staff({"uid": "u1", "role": "staff"})
    store.add(order_number="ORD-5", total=3, email="ama@example.com")

    resp = client.post(
        NOTIFY,
        json={"type": "order_status", "payload": {"orderNumber": "ORD-5", "status": "shipped", "phone": "0241234567"}},
    )

    assert resp.status_code == 200
    assert notifier.status_updates == [("ORD-5", "shipped", "0241234567")]


def test_missing_payload_is_bad_request(client):
    resp = client.post(NOTIFY, json={"type": "welcome"})
    assert resp.status_code == 400


def test_malformed_payload_is_bad_request(client):
    resp = client.post(NOTIFY, json={"type": "payment_link", "payload": {"total": 3}})
    assert resp.status_code == 400


def test_unknown_type_is_bad_request(client):
    resp = client.post(NOTIFY, json={"type": "fax", "payload": {"x": 1}})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid notification type"}
