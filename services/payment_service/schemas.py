from decimal import Decimal

from pydantic import BaseModel


class PaymentConfirm(BaseModel):
    payment_method_ref: str


class PaymentStatusResponse(BaseModel):
    payment_id: str
    status: str
    amount: Decimal | None = None
    currency: str | None = None


class WebhookAck(BaseModel):
    received: bool = True
    event_type: str | None = None
    handled: bool
    order_id: int | None = None
    payment_status: str | None = None
    order_status: str | None = None
