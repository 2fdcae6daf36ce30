from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Subscription, SubscriptionOrder, SubscriptionStatus


class SubscriptionRepository:
    @staticmethod
    async def create_subscription(db: AsyncSession, subscription: Subscription):
        db.add(subscription)
        await db.flush()
        return subscription

    @staticmethod
    async def list_due_ids(db: AsyncSession, today: date) -> list[int]:
        result = await db.execute(
            select(Subscription.id)
            .where(Subscription.status == SubscriptionStatus.ACTIVE, Subscription.next_order_date <= today)
            .order_by(Subscription.next_order_date, Subscription.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_for_update(db: AsyncSession, subscription_id: int):
        result = await db.execute(
            select(Subscription).where(Subscription.id == subscription_id).with_for_update()
        )
        return result.scalars().first()

    @staticmethod
    async def link_order(db: AsyncSession, subscription_id: int, order_id: int) -> SubscriptionOrder:
        link = SubscriptionOrder(subscription_id=subscription_id, order_id=order_id)
        db.add(link)
        await db.flush()
        return link

    @staticmethod
    async def list_orders(db: AsyncSession, subscription_id: int):
        result = await db.execute(
            select(SubscriptionOrder)
            .where(SubscriptionOrder.subscription_id == subscription_id)
            .order_by(SubscriptionOrder.id)
        )
        return result.scalars().all()
