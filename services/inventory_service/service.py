from dataclasses import dataclass
from decimal import Decimal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import UnitOfWork
from shared.errors import InsufficientInventoryError, ValidationError
from shared.observability import ecomm_inventory_reservations_total

from .models import ProductVariant
from .repository import InventoryAuditRepository, VariantRepository
from .schemas import VariantCreate

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StockLine:
    variant_id: int
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    variant_id: int
    quantity: int
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


class InventoryReservation:
    """Reservable stock per variant. Every call runs inside the caller's unit of work."""

    @staticmethod
    async def quote(uow: UnitOfWork, lines: list[StockLine]) -> list[PricedLine]:
        """Price each line at the current catalog price, refusing lines that cannot be filled."""
        variants = await VariantRepository.get_variants_for_update(uow.session, [line.variant_id for line in lines])
        priced = []
        for line in lines:
            variant = variants.get(line.variant_id)
            if variant is None:
                raise ValidationError(f"Product variant {line.variant_id} not found", variant_id=line.variant_id)
            if variant.inventory_quantity < line.quantity:
                ecomm_inventory_reservations_total.labels(outcome="insufficient").inc()
                raise InsufficientInventoryError(line.variant_id, line.quantity, variant.inventory_quantity)
            priced.append(PricedLine(line.variant_id, line.quantity, Decimal(variant.price)))
        return priced

    @staticmethod
    async def reserve(uow: UnitOfWork, lines: list[StockLine], reason: str):
        reserved: list[StockLine] = []
        try:
            for line in lines:
                if not await VariantRepository.try_decrement(uow.session, line.variant_id, line.quantity):
                    available = await VariantRepository.get_available(uow.session, line.variant_id)
                    ecomm_inventory_reservations_total.labels(outcome="insufficient").inc()
                    raise InsufficientInventoryError(line.variant_id, line.quantity, available)
                reserved.append(line)
                await InventoryAuditRepository.log_change(
                    uow.session, line.variant_id, -line.quantity, "RESERVED", reason
                )
        except InsufficientInventoryError:
            if reserved:
                logger.info("reservation_unwound", reason=reason, variants=[line.variant_id for line in reserved])
                await InventoryReservation.release(uow, reserved, f"{reason} (unwound)")
            raise
        ecomm_inventory_reservations_total.labels(outcome="reserved").inc()

    @staticmethod
    async def release(uow: UnitOfWork, lines: list[StockLine], reason: str):
        for line in lines:
            if not await VariantRepository.increment(uow.session, line.variant_id, line.quantity):
                raise ValidationError(f"Product variant {line.variant_id} not found", variant_id=line.variant_id)
            await InventoryAuditRepository.log_change(
                uow.session, line.variant_id, line.quantity, "RELEASED", reason
            )
        ecomm_inventory_reservations_total.labels(outcome="released").inc()

    @staticmethod
    async def available(uow: UnitOfWork, variant_id: int) -> int:
        return await VariantRepository.get_available(uow.session, variant_id)

    @staticmethod
    async def adjust(uow: UnitOfWork, variant_id: int, delta: int, reason: str) -> int:
        """Manual stock correction; refuses to take stock below zero."""
        if delta == 0:
            raise ValidationError("Stock adjustment must be non-zero")
        if delta > 0:
            changed = await VariantRepository.increment(uow.session, variant_id, delta)
        else:
            changed = await VariantRepository.try_decrement(uow.session, variant_id, -delta)
        if not changed:
            if await VariantRepository.get_variant(uow.session, variant_id) is None:
                raise ValidationError(f"Product variant {variant_id} not found", variant_id=variant_id)
            available = await VariantRepository.get_available(uow.session, variant_id)
            raise InsufficientInventoryError(variant_id, -delta, available)
        await InventoryAuditRepository.log_change(uow.session, variant_id, delta, "ADJUSTMENT", reason)
        return await VariantRepository.get_available(uow.session, variant_id)


class InventoryService:
    @staticmethod
    async def create_variant(db: AsyncSession, variant_data: VariantCreate) -> ProductVariant:
        if await VariantRepository.get_by_sku(db, variant_data.sku) is not None:
            raise ValidationError(f"SKU {variant_data.sku} already exists", sku=variant_data.sku)
        variant = await VariantRepository.create_variant(db, ProductVariant(**variant_data.model_dump()))
        await db.commit()
        return variant

    @staticmethod
    async def get_variant(db: AsyncSession, variant_id: int):
        return await VariantRepository.get_variant(db, variant_id)

    @staticmethod
    async def list_audit(db: AsyncSession, variant_id: int, limit: int = 100):
        return await InventoryAuditRepository.list_for_variant(db, variant_id, limit=limit)
