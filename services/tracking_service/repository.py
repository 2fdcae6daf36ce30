from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.order_service.models import Order
from shared.config.database import UnitOfWork

from .models import TrackingCache, TrackingHistory
from .schemas import TrackingInfo


class TrackingRepository:
    @staticmethod
    async def get_fresh_cache_entry(db: AsyncSession, tracking_number: str, now: datetime):
        result = await db.execute(
            select(TrackingCache).where(
                TrackingCache.tracking_number == tracking_number,
                TrackingCache.expires_at > now,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def upsert_cache_entry(db: AsyncSession, entry: TrackingCache):
        return await db.merge(entry)

    @staticmethod
    async def list_history(db: AsyncSession, order_id: int, newest_first: bool = True):
        ordering = TrackingHistory.timestamp.desc() if newest_first else TrackingHistory.timestamp
        result = await db.execute(
            select(TrackingHistory)
            .where(TrackingHistory.order_id == order_id)
            .order_by(ordering, TrackingHistory.id)
        )
        return result.scalars().all()

    @staticmethod
    async def add_history(db: AsyncSession, entry: TrackingHistory):
        db.add(entry)


class TrackingStore:
    """Persistent tracking cache and per-order tracking history.

    Each call runs in its own unit of work so cache traffic never joins an
    order transaction.
    """

    def __init__(self, session_factory: async_sessionmaker | None = None):
        self._session_factory = session_factory

    async def get_cached(self, tracking_number: str) -> TrackingInfo | None:
        async with UnitOfWork(self._session_factory) as uow:
            entry = await TrackingRepository.get_fresh_cache_entry(
                uow.session, tracking_number, datetime.now(timezone.utc)
            )
            if entry is None:
                return None
            return TrackingInfo.model_validate_json(entry.payload)

    async def put_cached(self, tracking_number: str, info: TrackingInfo, ttl_minutes: int):
        now = datetime.now(timezone.utc)
        async with UnitOfWork(self._session_factory) as uow:
            await TrackingRepository.upsert_cache_entry(
                uow.session,
                TrackingCache(
                    tracking_number=tracking_number,
                    carrier=info.carrier,
                    payload=info.model_dump_json(),
                    expires_at=now + timedelta(minutes=ttl_minutes),
                    last_updated=now,
                ),
            )

    async def record_tracking(self, order_id: int, info: TrackingInfo) -> int:
        """Refresh the order's tracking fields and store events not seen before.

        Returns the number of newly stored events.
        """
        async with UnitOfWork(self._session_factory) as uow:
            result = await uow.session.execute(select(Order).where(Order.id == order_id).with_for_update())
            order = result.scalars().first()
            if order is None:
                return 0
            order.tracking_status = info.status.value
            order.tracking_updated_at = datetime.now(timezone.utc)
            if info.estimated_delivery:
                order.estimated_delivery_date = info.estimated_delivery

            existing = await TrackingRepository.list_history(uow.session, order_id)
            seen = {(row.status, row.timestamp, row.location) for row in existing}
            added = 0
            for event in info.events:
                key = (event.status.value, event.timestamp, event.location)
                if key in seen:
                    continue
                seen.add(key)
                await TrackingRepository.add_history(
                    uow.session,
                    TrackingHistory(
                        order_id=order_id,
                        tracking_number=info.tracking_number,
                        status=event.status.value,
                        status_description=event.description,
                        location=event.location,
                        timestamp=event.timestamp,
                        carrier_raw_payload=event.carrier_data,
                    ),
                )
                added += 1
            return added

    async def history_for_order(self, order_id: int):
        async with UnitOfWork(self._session_factory) as uow:
            return await TrackingRepository.list_history(uow.session, order_id)
