# models/order_model.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal, Any, Dict
from datetime import datetime

PaymentStatus = Literal["pending", "paid", "failed"]
FulfillmentStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]


class Order(BaseModel):
    """An order as stored by the storefront. This service only reads it and flips payment state."""
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    order_number: str
    total: float = 0.0

    email: Optional[str] = None
    phone: Optional[str] = None
    shipping_address: Dict[str, Any] = Field(default_factory=dict)

    payment_status: PaymentStatus = "pending"
    status: FulfillmentStatus = "pending"

    # moolre_reference, failure_reason, payment_method, tracking_number, verified_via
    metadata: Dict[str, Any] = Field(default_factory=dict)

    payment_reminder_sent: bool = False
    payment_reminder_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def customer_name(self) -> str:
        return (
            self.shipping_address.get("firstName")
            or self.shipping_address.get("first_name")
            or "Customer"
        )

    @property
    def contact_phone(self) -> Optional[str]:
        return self.phone or self.shipping_address.get("phone")


class PaymentTransition(BaseModel):
    """Result of the mark-paid procedure. `applied` is False when the order was already paid."""
    order: Order
    applied: bool


# ----------------------------------------------------------------
# API payloads
# ----------------------------------------------------------------
class InitiatePaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: Optional[str] = Field(default=None, alias="orderId")
    amount: Optional[float] = None
    customer_email: Optional[str] = Field(default=None, alias="customerEmail")


class VerifyPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_number: Optional[str] = Field(default=None, alias="orderNumber")
    from_redirect: bool = Field(default=False, alias="fromRedirect")
