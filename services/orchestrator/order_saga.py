"""Steps of the order-creation saga.

Every database step writes through the same unit of work, so a failure
anywhere rolls all of it back with the transaction. The only side effect
living outside the transaction is the processor's payment intent, which is
the one step that needs an explicit compensation.
"""
from decimal import Decimal

import structlog

from services.inventory_service.service import InventoryReservation
from services.order_service.models import Order, OrderItem, OrderStatus
from services.order_service.repository import ChannelRepository, OrderRepository, StatusHistoryRepository
from services.payment_service.models import Payment, PaymentStatus
from services.payment_service.repository import PaymentRepository

from .saga import SagaOrchestrator

logger = structlog.get_logger(__name__)


# --- ACTIONS ---

async def price_items(ctx: dict):
    ctx["priced"] = await InventoryReservation.quote(ctx["uow"], ctx["lines"])
    ctx["total"] = sum((line.total_price for line in ctx["priced"]), Decimal("0"))


async def reserve_inventory(ctx: dict):
    await InventoryReservation.reserve(ctx["uow"], ctx["lines"], f"Order {ctx['external_id']}")


async def create_order_record(ctx: dict):
    db = ctx["uow"].session
    channel = await ChannelRepository.ensure_channel(db, ctx["channel"])
    order = Order(
        channel_id=channel.id,
        external_id=ctx["external_id"],
        user_id=ctx.get("buyer_id"),
        status=OrderStatus.PENDING,
        total=ctx["total"],
        shipping_address=ctx["shipping_address"],
        items=[
            OrderItem(
                variant_id=line.variant_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.total_price,
            )
            for line in ctx["priced"]
        ],
    )
    await OrderRepository.create_order(db, order)
    ctx["order"] = order


async def open_payment_intent(ctx: dict):
    ctx["payment_intent"] = await ctx["gateway"].create_payment_intent(
        ctx["total"], currency=ctx["currency"], description=f"Order {ctx['external_id']}"
    )


async def record_payment(ctx: dict):
    await PaymentRepository.create_payment(
        ctx["uow"].session,
        Payment(
            order_id=ctx["order"].id,
            payment_method=ctx["payment_method"],
            external_payment_ref=ctx["payment_intent"].intent_id,
            amount=ctx["total"],
            status=PaymentStatus.REQUIRES_ACTION,
        ),
    )


async def record_history(ctx: dict):
    await StatusHistoryRepository.append(
        ctx["uow"].session,
        ctx["order"].id,
        None,
        OrderStatus.PENDING.value,
        changed_by=ctx.get("buyer_id"),
        reason="Order created",
    )


async def commit_order(ctx: dict):
    # Skipped when the caller owns the transaction and commits it later
    if ctx.get("owns_transaction", True):
        await ctx["uow"].commit()


# --- COMPENSATIONS ---

async def cancel_payment_intent(ctx: dict):
    intent = ctx.get("payment_intent")
    if intent is None:
        return
    logger.info("payment_intent_cancelling", intent_id=intent.intent_id, external_id=ctx["external_id"])
    await ctx["gateway"].cancel_payment_intent(intent.intent_id)


# --- BUILDER FACTORY ---

def build_order_saga() -> SagaOrchestrator:
    saga = SagaOrchestrator("create_order")
    saga.add_step("price_items", price_items, None)  # read-only
    saga.add_step("reserve_inventory", reserve_inventory, None)  # undone by the transaction rollback
    saga.add_step("create_order_record", create_order_record, None)
    saga.add_step("open_payment_intent", open_payment_intent, cancel_payment_intent)
    saga.add_step("record_payment", record_payment, None)
    saga.add_step("record_history", record_history, None)
    saga.add_step("commit_order", commit_order, None)
    return saga
