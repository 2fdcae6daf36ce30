from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String
from shared.config.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class ProductVariant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (
        CheckConstraint("inventory_quantity >= 0", name="ck_variant_inventory_non_negative"),
        CheckConstraint("price > 0", name="ck_variant_price_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    inventory_quantity = Column(Integer, nullable=False, default=0)  # reservable stock


class InventoryAuditLog(Base):
    __tablename__ = "inventory_audit_log"

    id = Column(Integer, primary_key=True, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False, index=True)
    quantity_change = Column(Integer, nullable=False)
    change_type = Column(String, nullable=False)  # RESERVED, RELEASED
    reason = Column(String, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
