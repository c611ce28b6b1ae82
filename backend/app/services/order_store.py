# services/order_store.py
import asyncio
import logging
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, Iterable, List, Optional

from google.cloud import firestore

from app.models.order_model import Order, PaymentTransition

logger = logging.getLogger("storefront.orders")

ORDERS = "orders"
CUSTOMERS = "customers"


class OrderStoreError(Exception):
    """The backing database refused or failed an operation."""


class OrderStore:
    """
    Everything the payment flow needs from the order database.

    `mark_order_paid` must be atomic and idempotent: it flips an unpaid order
    to paid exactly once, and on an already paid order returns it untouched
    with `applied=False`.
    """

    async def get_order(self, order_number: str) -> Optional[Order]:
        raise NotImplementedError

    async def save_payment_attempt(self, order_number: str, external_ref: str, gateway_reference: Optional[str]) -> bool:
        """Remember the reference a payment link was issued under. False if the order is unknown."""
        raise NotImplementedError

    async def mark_order_paid(self, order_number: str, gateway_reference: str, verified_via: str = "callback") -> Optional[PaymentTransition]:
        raise NotImplementedError

    async def mark_order_failed(self, order_number: str, gateway_reference: str, reason: str) -> bool:
        raise NotImplementedError

    async def update_customer_stats(self, email: str, order_total: float) -> None:
        raise NotImplementedError

    async def list_orders_due_reminder(self, older_than: datetime, limit: int) -> List[Order]:
        raise NotImplementedError

    async def mark_reminder_sent(self, order: Order) -> None:
        raise NotImplementedError


def _order_from_snapshot(snap) -> Order:
    data = snap.to_dict() or {}
    data.setdefault("id", snap.id)
    return Order(**data)


# ----------------------------------------------------------------
# Transaction bodies. Run inside @firestore.transactional; `txn` only
# needs `get(query)` and `update(ref, data)`.
# ----------------------------------------------------------------
def apply_mark_paid(txn, query, gateway_reference: str, verified_via: str, now: Optional[datetime] = None) -> Optional[PaymentTransition]:
    docs = list(txn.get(query))
    if not docs:
        return None

    snap = docs[0]
    order = _order_from_snapshot(snap)
    if order.is_paid:
        return PaymentTransition(order=order, applied=False)

    now = now or datetime.now(timezone.utc)
    metadata = {**order.metadata, "moolre_reference": gateway_reference, "verified_via": verified_via}
    metadata.pop("failure_reason", None)
    updates: Dict[str, Any] = {
        "payment_status": "paid",
        "status": "processing" if order.status == "pending" else order.status,
        "paid_at": now,
        "updated_at": now,
        "metadata": metadata,
    }
    txn.update(snap.reference, updates)
    return PaymentTransition(order=order.model_copy(update=updates), applied=True)


def apply_mark_failed(txn, query, gateway_reference: str, reason: str, now: Optional[datetime] = None) -> bool:
    docs = list(txn.get(query))
    if not docs:
        return False

    snap = docs[0]
    order = _order_from_snapshot(snap)
    if order.is_paid:
        return False

    txn.update(snap.reference, {
        "payment_status": "failed",
        "updated_at": now or datetime.now(timezone.utc),
        "metadata": {
            **order.metadata,
            "moolre_reference": gateway_reference,
            "failure_reason": reason,
        },
    })
    return True


def take_due_reminders(snapshots: Iterable, limit: int) -> List[Order]:
    """
    Older order documents may not carry `payment_reminder_sent` at all,
    so the flag is checked here instead of in the query.
    """
    due: List[Order] = []
    for snap in snapshots:
        if (snap.to_dict() or {}).get("payment_reminder_sent"):
            continue
        order = _order_from_snapshot(snap)
        if order.is_paid:
            continue
        due.append(order)
        if len(due) >= limit:
            break
    return due


class FirestoreOrderStore(OrderStore):
    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        if self._db is None:
            from app.core.firebase import get_db
            self._db = get_db()
        return self._db

    def _order_query(self, order_number: str):
        return self.db.collection(ORDERS).where("order_number", "==", order_number).limit(1)

    # ----------------------------------------------------------------
    # Reads
    # ----------------------------------------------------------------
    def _get_order_sync(self, order_number: str) -> Optional[Order]:
        docs = list(self._order_query(order_number).stream())
        return _order_from_snapshot(docs[0]) if docs else None

    async def get_order(self, order_number: str) -> Optional[Order]:
        try:
            return await asyncio.to_thread(self._get_order_sync, order_number)
        except Exception as e:
            logger.error(f"Order lookup failed for {order_number}: {e}")
            raise OrderStoreError(str(e)) from e

    # ----------------------------------------------------------------
    # Payment link bookkeeping
    # ----------------------------------------------------------------
    def _save_attempt_sync(self, order_number: str, external_ref: str, gateway_reference: Optional[str]) -> bool:
        docs = list(self._order_query(order_number).stream())
        if not docs:
            return False
        docs[0].reference.update({
            "metadata.moolre_externalref": external_ref,
            "metadata.moolre_link_reference": gateway_reference,
            "updated_at": datetime.now(timezone.utc),
        })
        return True

    async def save_payment_attempt(self, order_number: str, external_ref: str, gateway_reference: Optional[str]) -> bool:
        try:
            return await asyncio.to_thread(self._save_attempt_sync, order_number, external_ref, gateway_reference)
        except Exception as e:
            logger.error(f"save_payment_attempt failed for {order_number}: {e}")
            raise OrderStoreError(str(e)) from e

    # ----------------------------------------------------------------
    # Atomic mark-paid
    # ----------------------------------------------------------------
    def _mark_paid_sync(self, order_number: str, gateway_reference: str, verified_via: str) -> Optional[PaymentTransition]:
        transaction = self.db.transaction()
        query = self._order_query(order_number)

        @firestore.transactional
        def apply(txn):
            return apply_mark_paid(txn, query, gateway_reference, verified_via)

        return apply(transaction)

    async def mark_order_paid(self, order_number: str, gateway_reference: str, verified_via: str = "callback") -> Optional[PaymentTransition]:
        try:
            return await asyncio.to_thread(self._mark_paid_sync, order_number, gateway_reference, verified_via)
        except Exception as e:
            logger.error(f"mark_order_paid failed for {order_number}: {e}")
            raise OrderStoreError(str(e)) from e

    # ----------------------------------------------------------------
    # Failure marking (never downgrades a paid order)
    # ----------------------------------------------------------------
    def _mark_failed_sync(self, order_number: str, gateway_reference: str, reason: str) -> bool:
        transaction = self.db.transaction()
        query = self._order_query(order_number)

        @firestore.transactional
        def apply(txn):
            return apply_mark_failed(txn, query, gateway_reference, reason)

        return apply(transaction)

    async def mark_order_failed(self, order_number: str, gateway_reference: str, reason: str) -> bool:
        try:
            return await asyncio.to_thread(self._mark_failed_sync, order_number, gateway_reference, reason)
        except Exception as e:
            logger.error(f"mark_order_failed failed for {order_number}: {e}")
            raise OrderStoreError(str(e)) from e

    # ----------------------------------------------------------------
    # Customer stats
    # ----------------------------------------------------------------
    async def update_customer_stats(self, email: str, order_total: float) -> None:
        doc_ref = self.db.collection(CUSTOMERS).document(email.strip().lower())
        await asyncio.to_thread(
            doc_ref.set,
            {
                "email": email,
                "total_orders": firestore.Increment(1),
                "total_spent": firestore.Increment(float(order_total or 0)),
                "last_order_at": datetime.now(timezone.utc),
            },
            merge=True,
        )

    # ----------------------------------------------------------------
    # Payment reminders
    # ----------------------------------------------------------------
    def _due_reminder_sync(self, older_than: datetime, limit: int) -> List[Order]:
        docs = (
            self.db.collection(ORDERS)
            .where("payment_status", "in", ["pending", "failed"])
            .where("created_at", "<", older_than)
            .order_by("created_at")
            .stream()
        )
        return take_due_reminders(docs, limit)

    async def list_orders_due_reminder(self, older_than: datetime, limit: int) -> List[Order]:
        try:
            return await asyncio.to_thread(self._due_reminder_sync, older_than, limit)
        except Exception as e:
            logger.error(f"Reminder query failed: {e}")
            raise OrderStoreError(str(e)) from e

    async def mark_reminder_sent(self, order: Order) -> None:
        await asyncio.to_thread(
            self.db.collection(ORDERS).document(order.id).update,
            {
                "payment_reminder_sent": True,
                "payment_reminder_sent_at": datetime.now(timezone.utc),
            },
        )


def reminder_cutoff(delay_minutes: int, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(minutes=delay_minutes)


_default_store: Optional[OrderStore] = None


def get_order_store() -> OrderStore:
    global _default_store
    if _default_store is None:
        _default_store = FirestoreOrderStore()
    return _default_store
