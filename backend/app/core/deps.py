# core/deps.py
from fastapi import Depends

from app.services.moolre import MoolreClient, get_moolre_client
from app.services.notifications import Notifier, get_notifier
from app.services.order_store import OrderStore, get_order_store
from app.services.payments import PaymentService


def get_payment_service(
    store: OrderStore = Depends(get_order_store),
    notifier: Notifier = Depends(get_notifier),
    gateway: MoolreClient = Depends(get_moolre_client),
) -> PaymentService:
    return PaymentService(store=store, notifier=notifier, gateway=gateway)
