import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String
from shared.config.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class PaymentMethod(str, enum.Enum):
    APPLE_PAY = "APPLE_PAY"
    GOOGLE_PAY = "GOOGLE_PAY"
    KLARNA = "KLARNA"
    CLEARPAY = "CLEARPAY"
    SUBSCRIPTION = "SUBSCRIPTION"  # renewal orders placed by the subscription job


class PaymentStatus(str, enum.Enum):
    REQUIRES_ACTION = "REQUIRES_ACTION"
    SUCCEEDED = "SUCCEEDED"
    CANCELED = "CANCELED"
    FAILED = "FAILED"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)
    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", native_enum=False, create_constraint=True),
        nullable=False,
    )
    external_payment_ref = Column(String, nullable=False, unique=True)  # processor payment-intent id
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(PaymentStatus, name="payment_status", native_enum=False, create_constraint=True),
        nullable=False,
        default=PaymentStatus.REQUIRES_ACTION,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
