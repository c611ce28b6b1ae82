import asyncio
import os
import sys
from typing import Dict, List, Optional


# Allow running pytest from either the repo root or from within `backend/`.
# Tests import `app.*` / `main`, which requires `backend/` on sys.path.
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

import pytest
from fastapi.testclient import TestClient

from app.core.rate_limit import RateLimiter
from app.models.order_model import Order, PaymentTransition
from app.services.moolre import get_moolre_client
from app.services.notifications import get_notifier
from app.services.order_store import OrderStore, OrderStoreError, get_order_store


class MemoryOrderStore(OrderStore):
    """Dict-backed store. The check-and-set in mark_order_paid has no await inside it."""

    def __init__(self, orders=()):
        self.orders: Dict[str, Order] = {o.order_number: o for o in orders}
        self.fail_writes = False
        self.fail_stats = False
        self.paid_calls: List[tuple] = []
        self.failed_calls: List[tuple] = []
        self.stats_calls: List[tuple] = []
        self.reminded: List[str] = []

    def add(self, **fields) -> Order:
        order = Order(**fields)
        self.orders[order.order_number] = order
        return order

    async def get_order(self, order_number: str) -> Optional[Order]:
        await asyncio.sleep(0)
        order = self.orders.get(order_number)
        return order.model_copy(deep=True) if order else None

    async def save_payment_attempt(self, order_number, external_ref, gateway_reference):
        if self.fail_writes:
            raise OrderStoreError("write refused")
        order = self.orders.get(order_number)
        if order is None:
            return False
        self.orders[order_number] = order.model_copy(update={
            "metadata": {**order.metadata, "moolre_externalref": external_ref, "moolre_link_reference": gateway_reference},
        })
        return True

    async def mark_order_paid(self, order_number, gateway_reference, verified_via="callback"):
        self.paid_calls.append((order_number, gateway_reference, verified_via))
        if self.fail_writes:
            raise OrderStoreError("write refused")
        order = self.orders.get(order_number)
        if order is None:
            return None
        if order.is_paid:
            return PaymentTransition(order=order.model_copy(deep=True), applied=False)
        updated = order.model_copy(update={
            "payment_status": "paid",
            "status": "processing",
            "metadata": {**order.metadata, "moolre_reference": gateway_reference, "verified_via": verified_via},
        })
        self.orders[order_number] = updated
        return PaymentTransition(order=updated.model_copy(deep=True), applied=True)

    async def mark_order_failed(self, order_number, gateway_reference, reason):
        self.failed_calls.append((order_number, gateway_reference, reason))
        if self.fail_writes:
            raise OrderStoreError("write refused")
        order = self.orders.get(order_number)
        if order is None or order.is_paid:
            return False
        self.orders[order_number] = order.model_copy(update={
            "payment_status": "failed",
            "metadata": {**order.metadata, "moolre_reference": gateway_reference, "failure_reason": reason},
        })
        return True

    async def update_customer_stats(self, email, order_total):
        if self.fail_stats:
            raise RuntimeError("stats unavailable")
        self.stats_calls.append((email, order_total))

    async def list_orders_due_reminder(self, older_than, limit):
        due = [
            o for o in self.orders.values()
            if not o.is_paid and not o.payment_reminder_sent and o.created_at and o.created_at < older_than
        ]
        due.sort(key=lambda o: o.created_at)
        return [o.model_copy(deep=True) for o in due[:limit]]

    async def mark_reminder_sent(self, order):
        self.reminded.append(order.order_number)
        self.orders[order.order_number] = self.orders[order.order_number].model_copy(
            update={"payment_reminder_sent": True}
        )


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.confirmations: List[str] = []
        self.status_updates: List[tuple] = []
        self.payment_links: List[str] = []
        self.welcomes: List[dict] = []
        self.contacts: List[dict] = []
        self.campaigns: List[tuple] = []

    async def send_order_confirmation(self, order):
        if self.fail:
            raise RuntimeError("smtp down")
        self.confirmations.append(order.order_number)
        return {"email": True, "sms": True}

    async def send_order_status_update(self, order, status):
        self.status_updates.append((order.order_number, status, order.phone))
        return {"email": True, "sms": True}

    async def send_payment_link(self, order):
        if self.fail:
            raise RuntimeError("sms down")
        self.payment_links.append(order.order_number)
        return {"email": True, "sms": True}

    async def send_welcome_message(self, payload):
        self.welcomes.append(payload)
        return {"email": True, "sms": False}

    async def send_contact_message(self, payload):
        self.contacts.append(payload)
        return {"email": True, "sms": False}

    async def send_campaign(self, recipients, subject, message, channels_enabled):
        self.campaigns.append((recipients, subject, message, channels_enabled))
        return {"email": len(recipients), "sms": 0, "errors": 0}


class FakeGateway:
    def __init__(self, configured: bool = True, confirmed: bool = False):
        self.configured = configured
        self.confirmed = confirmed
        self.status_queries: List[str] = []
        self.links: List[dict] = []
        self.error: Optional[Exception] = None

    async def is_payment_confirmed(self, external_ref):
        self.status_queries.append(external_ref)
        return self.confirmed

    async def create_payment_link(self, order_id, amount, customer_email, base_url):
        if self.error:
            raise self.error
        self.links.append({"order_id": order_id, "amount": amount, "email": customer_email, "base_url": base_url})
        return {"url": f"https://pay.example/{order_id}", "reference": "MR-1", "externalref": f"{order_id}-R1"}


@pytest.fixture
def store():
    return MemoryOrderStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app_instance(store, notifier, gateway):
    from main import app

    app.state.rate_limiter = RateLimiter()
    app.dependency_overrides[get_order_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_moolre_client] = lambda: gateway
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_instance):
    return TestClient(app_instance)


