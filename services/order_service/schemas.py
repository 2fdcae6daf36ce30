from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from services.payment_service.models import PaymentMethod, PaymentStatus

from .models import OrderStatus


class OrderItemCreate(BaseModel):
    variant_id: int
    quantity: int


class ShippingAddress(BaseModel):
    name: str
    line1: str
    line2: str | None = None
    city: str
    postcode: str
    country: str = "GB"


class OrderCreate(BaseModel):
    items: list[OrderItemCreate]
    shipping_address: ShippingAddress | None = None
    payment_method: PaymentMethod
    buyer_id: int | None = None


class PaymentIntentResponse(BaseModel):
    intent_id: str
    client_secret: str | None
    status: str


class OrderCreatedResponse(BaseModel):
    order_id: int
    external_id: str
    total: Decimal
    status: OrderStatus
    payment_intent: PaymentIntentResponse


class StatusUpdate(BaseModel):
    status: str
    actor: int | None = None
    reason: str = ""


class BulkStatusUpdate(StatusUpdate):
    order_ids: list[int] = Field(min_length=1)


class StatusChangeResponse(BaseModel):
    order_id: int
    old_status: OrderStatus
    new_status: OrderStatus
    tracking_number: str | None = None


class BulkUpdateResultResponse(BaseModel):
    order_id: int
    success: bool
    old_status: OrderStatus | None = None
    new_status: OrderStatus | None = None
    error: str | None = None
    error_code: str | None = None


class BulkUpdateResponse(BaseModel):
    results: list[BulkUpdateResultResponse]
    succeeded: list[int]
    failed: list[int]


class OrderItemResponse(BaseModel):
    id: int
    variant_id: int
    quantity: int
    unit_price: Decimal
    total_price: Decimal

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: int
    payment_method: PaymentMethod
    external_payment_ref: str
    amount: Decimal
    status: PaymentStatus
    created_at: datetime

    class Config:
        from_attributes = True


class StatusHistoryResponse(BaseModel):
    old_status: str | None
    new_status: str
    changed_by: int | None
    reason: str
    created_at: datetime

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    external_id: str
    user_id: int | None
    status: OrderStatus
    total: Decimal
    shipping_address: dict | None
    order_date: datetime
    tracking_number: str | None
    carrier: str | None
    shipping_date: datetime | None
    estimated_delivery_date: str | None
    tracking_status: str | None
    items: list[OrderItemResponse]

    class Config:
        from_attributes = True


class OrderDetailResponse(OrderResponse):
    payment: PaymentResponse | None = None
    history: list[StatusHistoryResponse] = Field(default_factory=list)
