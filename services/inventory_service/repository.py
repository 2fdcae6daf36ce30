from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import InventoryAuditLog, ProductVariant


class VariantRepository:

    @staticmethod
    async def create_variant(db: AsyncSession, variant: ProductVariant):
        db.add(variant)
        await db.flush()
        return variant

    @staticmethod
    async def get_variant(db: AsyncSession, variant_id: int):
        result = await db.execute(select(ProductVariant).where(ProductVariant.id == variant_id))
        return result.scalars().first()

    @staticmethod
    async def get_by_sku(db: AsyncSession, sku: str):
        result = await db.execute(select(ProductVariant).where(ProductVariant.sku == sku))
        return result.scalars().first()

    @staticmethod
    async def get_variants_for_update(db: AsyncSession, variant_ids: list[int]) -> dict[int, ProductVariant]:
        # Rows are locked in id order so two carts touching the same variants cannot deadlock.
        result = await db.execute(
            select(ProductVariant)
            .where(ProductVariant.id.in_(variant_ids))
            .order_by(ProductVariant.id)
            .with_for_update()
        )
        return {variant.id: variant for variant in result.scalars().all()}

    @staticmethod
    async def try_decrement(db: AsyncSession, variant_id: int, quantity: int) -> bool:
        """Atomic check-and-decrement; False when the row lacks ``quantity`` units."""
        result = await db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.inventory_quantity >= quantity)
            .values(inventory_quantity=ProductVariant.inventory_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def increment(db: AsyncSession, variant_id: int, quantity: int) -> bool:
        result = await db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .values(inventory_quantity=ProductVariant.inventory_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def get_available(db: AsyncSession, variant_id: int) -> int:
        result = await db.execute(
            select(ProductVariant.inventory_quantity).where(ProductVariant.id == variant_id)
        )
        return result.scalar_one_or_none() or 0


class InventoryAuditRepository:

    @staticmethod
    async def log_change(db: AsyncSession, variant_id: int, quantity_change: int, change_type: str, reason: str):
        db.add(
            InventoryAuditLog(
                variant_id=variant_id,
                quantity_change=quantity_change,
                change_type=change_type,
                reason=reason,
            )
        )

    @staticmethod
    async def list_for_variant(db: AsyncSession, variant_id: int, limit: int = 100):
        result = await db.execute(
            select(InventoryAuditLog)
            .where(InventoryAuditLog.variant_id == variant_id)
            .order_by(InventoryAuditLog.created_at.desc(), InventoryAuditLog.id.desc())
            .limit(limit)
        )
        return result.scalars().all()
