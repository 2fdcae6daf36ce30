from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text
from shared.config.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class TrackingHistory(Base):
    __tablename__ = "tracking_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    tracking_number = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)
    status_description = Column(String, nullable=True)
    location = Column(String, nullable=True)
    timestamp = Column(String, nullable=True)  # carrier-reported event time, ISO-8601
    carrier_raw_payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class TrackingCache(Base):
    __tablename__ = "tracking_cache"

    tracking_number = Column(String, primary_key=True)
    carrier = Column(String, nullable=False)
    payload = Column(Text, nullable=False)  # serialized TrackingInfo
    expires_at = Column(DateTime(timezone=True), nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
