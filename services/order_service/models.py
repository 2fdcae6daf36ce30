import enum
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from shared.config.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class Channel(Base):
    __tablename__ = "channels"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True)  # PWA, AMAZON, ETSY


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("channel_id", "external_id", name="uq_orders_channel_external_id"),
        CheckConstraint("total > 0", name="ck_orders_total_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    channel_id = Column(Integer, ForeignKey("channels.id"), nullable=False)
    external_id = Column(String, nullable=False)  # human-facing order number
    user_id = Column(Integer, nullable=True, index=True)
    status = Column(
        Enum(OrderStatus, name="order_status", native_enum=False, create_constraint=True),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    total = Column(Numeric(10, 2), nullable=False)  # == sum of item total_price
    shipping_address = Column(JSON, nullable=True)
    order_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # Tracking, filled in once the order ships
    tracking_number = Column(String, nullable=True, unique=True)
    carrier = Column(String, nullable=True)
    shipping_date = Column(DateTime(timezone=True), nullable=True)
    estimated_delivery_date = Column(String, nullable=True)
    tracking_status = Column(String, nullable=True)
    tracking_updated_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItem", back_populates="order", lazy="selectin", cascade="all, delete-orphan"
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price > 0", name="ck_order_items_unit_price_positive"),
        CheckConstraint("total_price > 0", name="ck_order_items_total_price_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)  # captured at order time
    total_price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    """Append-only audit trail; rows are never updated once written."""

    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    old_status = Column(String, nullable=True)  # NULL for the creation entry
    new_status = Column(String, nullable=False)
    changed_by = Column(Integer, nullable=True)
    reason = Column(String, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
