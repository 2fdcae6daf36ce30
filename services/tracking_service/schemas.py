import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class TrackingStatus(str, enum.Enum):
    ACCEPTED = "ACCEPTED"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    EXCEPTION = "EXCEPTION"
    RETURNED = "RETURNED"
    UNKNOWN = "UNKNOWN"


class TrackingEvent(BaseModel):
    status: TrackingStatus
    description: str | None = None
    location: str | None = None
    timestamp: str | None = None
    carrier_data: dict[str, Any] = Field(default_factory=dict)


class TrackingInfo(BaseModel):
    tracking_number: str
    carrier: str
    status: TrackingStatus
    status_description: str
    location: str
    timestamp: str | None = None
    estimated_delivery: str | None = None
    is_delivered: bool = False
    events: list[TrackingEvent] = Field(default_factory=list)


class TrackingHistoryEntry(BaseModel):
    status: str
    status_description: str | None
    location: str | None
    timestamp: str | None

    class Config:
        from_attributes = True


class OrderTrackingResponse(BaseModel):
    order_id: int
    has_tracking: bool
    message: str | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    shipping_date: datetime | None = None
    estimated_delivery: str | None = None
    current_status: str | None = None
    last_updated: datetime | None = None
    tracking_data: TrackingInfo | None = None
    history: list[TrackingHistoryEntry] = Field(default_factory=list)


class TrackingNumberAssign(BaseModel):
    tracking_number: str = Field(min_length=1)
    carrier: str = "ROYAL_MAIL"
