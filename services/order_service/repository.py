from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Channel, Order, OrderItem, OrderStatusHistory


class OrderRepository:
    @staticmethod
    async def create_order(db: AsyncSession, order: Order):
        db.add(order)
        await db.flush()
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int):
        result = await db.execute(select(Order).where(Order.id == order_id))
        return result.scalars().first()

    @staticmethod
    async def get_order_for_update(db: AsyncSession, order_id: int):
        # Serializes concurrent transitions of the same order
        result = await db.execute(select(Order).where(Order.id == order_id).with_for_update())
        return result.scalars().first()

    @staticmethod
    async def get_items(db: AsyncSession, order_id: int):
        result = await db.execute(
            select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
        )
        return result.scalars().all()

    @staticmethod
    async def get_by_tracking_number(db: AsyncSession, tracking_number: str):
        result = await db.execute(select(Order).where(Order.tracking_number == tracking_number))
        return result.scalars().first()


class ChannelRepository:
    @staticmethod
    async def get_by_name(db: AsyncSession, name: str):
        result = await db.execute(select(Channel).where(Channel.name == name))
        return result.scalars().first()

    @staticmethod
    async def ensure_channel(db: AsyncSession, name: str) -> Channel:
        channel = await ChannelRepository.get_by_name(db, name)
        if channel is None:
            channel = Channel(name=name)
            db.add(channel)
            await db.flush()
        return channel


class StatusHistoryRepository:
    """Insert-only access to the order audit trail."""

    @staticmethod
    async def append(
        db: AsyncSession,
        order_id: int,
        old_status: str | None,
        new_status: str,
        changed_by: int | None = None,
        reason: str = "",
    ) -> OrderStatusHistory:
        entry = OrderStatusHistory(
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by,
            reason=reason or "",
        )
        db.add(entry)
        await db.flush()
        return entry

    @staticmethod
    async def list_for_order(db: AsyncSession, order_id: int, newest_first: bool = False):
        ordering = (
            (OrderStatusHistory.created_at.desc(), OrderStatusHistory.id.desc())
            if newest_first
            else (OrderStatusHistory.created_at, OrderStatusHistory.id)
        )
        result = await db.execute(
            select(OrderStatusHistory).where(OrderStatusHistory.order_id == order_id).order_by(*ordering)
        )
        return result.scalars().all()
