from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Payment, PaymentStatus


class PaymentRepository:
    @staticmethod
    async def create_payment(db: AsyncSession, payment: Payment):
        db.add(payment)
        await db.flush()
        return payment

    @staticmethod
    async def get_for_order(db: AsyncSession, order_id: int):
        result = await db.execute(select(Payment).where(Payment.order_id == order_id))
        return result.scalars().first()

    @staticmethod
    async def get_by_external_ref(db: AsyncSession, external_ref: str):
        result = await db.execute(
            select(Payment).where(Payment.external_payment_ref == external_ref).with_for_update()
        )
        return result.scalars().first()

    @staticmethod
    async def list_succeeded(db: AsyncSession, order_id: int):
        result = await db.execute(
            select(Payment).where(Payment.order_id == order_id, Payment.status == PaymentStatus.SUCCEEDED)
        )
        return result.scalars().all()
