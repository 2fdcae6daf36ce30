from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class VariantCreate(BaseModel):
    sku: str = Field(min_length=1)
    name: str = Field(min_length=1)
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    inventory_quantity: int = Field(default=0, ge=0)


class VariantResponse(BaseModel):
    id: int
    sku: str
    name: str
    price: Decimal
    inventory_quantity: int

    class Config:
        from_attributes = True


class StockAdjustment(BaseModel):
    delta: int
    reason: str = "Manual adjustment"


class AvailabilityResponse(BaseModel):
    variant_id: int
    available: int


class AuditEntryResponse(BaseModel):
    variant_id: int
    quantity_change: int
    change_type: str
    reason: str
    created_at: datetime

    class Config:
        from_attributes = True
