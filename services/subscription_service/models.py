import enum
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Enum, ForeignKey, Integer, JSON
from shared.config.database import Base

from services.payment_service.models import PaymentMethod


def _utcnow():
    return datetime.now(timezone.utc)


class SubscriptionInterval(str, enum.Enum):
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_subscriptions_quantity_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    interval = Column(
        Enum(SubscriptionInterval, name="subscription_interval", native_enum=False, create_constraint=True),
        nullable=False,
    )
    status = Column(
        Enum(SubscriptionStatus, name="subscription_status", native_enum=False, create_constraint=True),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
    )
    next_order_date = Column(Date, nullable=False, index=True)
    last_order_date = Column(Date, nullable=True)
    shipping_address = Column(JSON, nullable=True)
    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", native_enum=False, create_constraint=True),
        nullable=False,
        default=PaymentMethod.SUBSCRIPTION,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class SubscriptionOrder(Base):
    __tablename__ = "subscription_orders"

    id = Column(Integer, primary_key=True, index=True)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
