"""Order lifecycle orchestration.

Creation runs the order saga inside one unit of work. Transitions lock the
order row, validate the edge and apply the transactional side effects
(inventory release, tracking issuance) before committing; refunds and
customer notifications run afterwards and can never undo a committed
transition.
"""
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from services.inventory_service.service import InventoryReservation, StockLine
from services.notification_service.dispatcher import NotificationDispatcher, NotificationEvent
from services.order_service.models import OrderStatus
from services.order_service.repository import OrderRepository, StatusHistoryRepository
from services.order_service.state_machine import RESERVING_STATES, validate_transition
from services.payment_service.gateway import PaymentGateway, PaymentIntent
from services.payment_service.models import PaymentMethod
from services.payment_service.repository import PaymentRepository
from services.tracking_service.models import TrackingHistory
from services.tracking_service.repository import TrackingRepository
from shared.config.database import UnitOfWork
from shared.errors import FulfillmentError, OrderNotFoundError, PaymentGatewayError, ValidationError
from shared.observability import (
    ecomm_notification_failures_total,
    ecomm_order_creation_duration_seconds,
    ecomm_order_transitions_total,
    ecomm_orders_created_total,
)

from .order_saga import build_order_saga

logger = structlog.get_logger(__name__)

DEFAULT_CARRIER = "ROYAL_MAIL"

_TRANSITION_NOTIFICATIONS = {
    OrderStatus.SHIPPED: NotificationEvent.ORDER_SHIPPED,
    OrderStatus.DELIVERED: NotificationEvent.ORDER_DELIVERED,
    OrderStatus.CANCELLED: NotificationEvent.ORDER_CANCELLED,
    OrderStatus.REFUNDED: NotificationEvent.ORDER_REFUNDED,
}


def generate_external_id(channel: str) -> str:
    return f"{channel}-{uuid.uuid4().hex[:12].upper()}"


def generate_tracking_number() -> str:
    return f"RM{uuid.uuid4().int % 10**10:010d}GB"


@dataclass(frozen=True)
class OrderCreated:
    order_id: int
    external_id: str
    total: Decimal
    status: OrderStatus
    payment_intent: PaymentIntent


@dataclass(frozen=True)
class StatusChange:
    order_id: int
    old_status: OrderStatus
    new_status: OrderStatus
    tracking_number: str | None = None


@dataclass
class BulkUpdateResult:
    order_id: int
    success: bool
    old_status: OrderStatus | None = None
    new_status: OrderStatus | None = None
    error: str | None = None
    error_code: str | None = None


@dataclass
class BulkUpdateReport:
    results: list[BulkUpdateResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[int]:
        return [r.order_id for r in self.results if r.success]

    @property
    def failed(self) -> list[int]:
        return [r.order_id for r in self.results if not r.success]


def _item_field(item: Any, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def normalize_items(items: Iterable[Any] | None) -> list[StockLine]:
    """Merge duplicate variants and order lines by variant id.

    A stable variant order means concurrent orders lock variant rows in the
    same sequence.
    """
    merged: dict[int, int] = {}
    for item in items or []:
        variant_id = _item_field(item, "variant_id")
        quantity = _item_field(item, "quantity")
        if not isinstance(variant_id, int) or isinstance(variant_id, bool):
            raise ValidationError("Each item needs an integer variant_id", variant_id=variant_id)
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ValidationError(
                f"Quantity for variant {variant_id} must be at least 1", variant_id=variant_id, quantity=quantity
            )
        merged[variant_id] = merged.get(variant_id, 0) + quantity
    if not merged:
        raise ValidationError("Order must contain at least one item")
    return [StockLine(variant_id, quantity) for variant_id, quantity in sorted(merged.items())]


def parse_status(value: OrderStatus | str) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unknown order status: {value}", status=str(value)) from None


def parse_payment_method(value: PaymentMethod | str) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).upper())
    except ValueError:
        raise ValidationError(f"Unsupported payment method: {value}", payment_method=str(value)) from None


class OrderLifecycleManager:
    def __init__(
        self,
        gateway: PaymentGateway,
        notifier: NotificationDispatcher,
        session_factory: async_sessionmaker | None = None,
        channel: str = "PWA",
        currency: str = "GBP",
    ):
        self.gateway = gateway
        self.notifier = notifier
        self._session_factory = session_factory
        self.channel = channel
        self.currency = currency

    @property
    def session_factory(self) -> async_sessionmaker | None:
        return self._session_factory

    @asynccontextmanager
    async def _unit_of_work(self, uow: UnitOfWork | None):
        if uow is not None:
            yield uow
            return
        async with UnitOfWork(self._session_factory) as owned:
            yield owned

    # --- creation ---

    async def create_order(
        self,
        items: Iterable[Any],
        shipping_address: dict | None,
        payment_method: PaymentMethod | str,
        buyer_id: int | None = None,
        uow: UnitOfWork | None = None,
    ) -> OrderCreated:
        """Create a PENDING order with reserved stock and an open payment intent.

        With ``uow`` given the caller owns the transaction: nothing is
        committed here and the confirmation notification is left to the
        caller (see ``notify_order_confirmed``).
        """
        lines = normalize_items(items)
        method = parse_payment_method(payment_method)
        ctx = {
            "lines": lines,
            "shipping_address": shipping_address,
            "payment_method": method,
            "buyer_id": buyer_id,
            "channel": self.channel,
            "currency": self.currency,
            "external_id": generate_external_id(self.channel),
            "gateway": self.gateway,
            "owns_transaction": uow is None,
        }

        started = time.perf_counter()
        try:
            async with self._unit_of_work(uow) as work:
                ctx["uow"] = work
                await build_order_saga().execute(ctx)
        except FulfillmentError as exc:
            ecomm_orders_created_total.labels(outcome=exc.code).inc()
            logger.warning("order_creation_failed", external_id=ctx["external_id"], error_code=exc.code, error=exc.message)
            raise
        except Exception:
            ecomm_orders_created_total.labels(outcome="error").inc()
            logger.exception("order_creation_crashed", external_id=ctx["external_id"])
            raise
        finally:
            ecomm_order_creation_duration_seconds.observe(time.perf_counter() - started)

        ecomm_orders_created_total.labels(outcome="created").inc()
        created = OrderCreated(
            order_id=ctx["order"].id,
            external_id=ctx["external_id"],
            total=ctx["total"],
            status=OrderStatus.PENDING,
            payment_intent=ctx["payment_intent"],
        )
        logger.info(
            "order_created",
            order_id=created.order_id,
            external_id=created.external_id,
            total=str(created.total),
            intent_id=created.payment_intent.intent_id,
        )
        if uow is None:
            await self.notify_order_confirmed(created)
        return created

    async def notify_order_confirmed(self, created: OrderCreated):
        await self._notify(
            created.order_id,
            NotificationEvent.ORDER_CONFIRMED,
            {"external_id": created.external_id, "total": str(created.total)},
        )

    async def cancel_payment_intent(self, intent_id: str):
        """Best-effort cancellation of an intent whose order never committed."""
        try:
            await self.gateway.cancel_payment_intent(intent_id)
        except PaymentGatewayError as exc:
            logger.error("payment_intent_cancel_failed", intent_id=intent_id, error=exc.message)

    # --- transitions ---

    async def update_status(
        self,
        order_id: int,
        new_status: OrderStatus | str,
        actor: int | None = None,
        reason: str = "",
    ) -> StatusChange:
        target = parse_status(new_status)
        refunds: list[tuple[str, Decimal]] = []

        async with UnitOfWork(self._session_factory) as uow:
            order = await OrderRepository.get_order_for_update(uow.session, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            old_status = order.status
            validate_transition(order_id, old_status, target)

            order.status = target
            await StatusHistoryRepository.append(
                uow.session, order_id, old_status.value, target.value, changed_by=actor, reason=reason
            )

            if target is OrderStatus.CANCELLED and old_status in RESERVING_STATES:
                items = await OrderRepository.get_items(uow.session, order_id)
                await InventoryReservation.release(
                    uow,
                    [StockLine(item.variant_id, item.quantity) for item in items],
                    f"Order {order.external_id} cancelled",
                )
            elif target is OrderStatus.SHIPPED:
                await self._issue_tracking(uow, order)
            elif target is OrderStatus.REFUNDED:
                payments = await PaymentRepository.list_succeeded(uow.session, order_id)
                refunds = [(p.external_payment_ref, Decimal(p.amount)) for p in payments]

            change = StatusChange(order_id, old_status, target, order.tracking_number)
            external_id = order.external_id

        ecomm_order_transitions_total.labels(from_status=old_status.value, to_status=target.value).inc()
        logger.info(
            "order_status_changed",
            order_id=order_id,
            old_status=old_status.value,
            new_status=target.value,
            actor=actor,
        )

        for payment_ref, amount in refunds:
            await self._refund(order_id, payment_ref, amount)

        event = _TRANSITION_NOTIFICATIONS.get(target)
        if event is not None:
            context = {"external_id": external_id}
            if change.tracking_number:
                context["tracking_number"] = change.tracking_number
            await self._notify(order_id, event, context)
        return change

    async def bulk_update_status(
        self,
        order_ids: Iterable[int],
        new_status: OrderStatus | str,
        actor: int | None = None,
        reason: str = "",
    ) -> BulkUpdateReport:
        report = BulkUpdateReport()
        for order_id in order_ids:
            try:
                change = await self.update_status(order_id, new_status, actor=actor, reason=reason)
            except FulfillmentError as exc:
                report.results.append(
                    BulkUpdateResult(order_id, False, error=exc.message, error_code=exc.code)
                )
                continue
            except Exception as exc:
                logger.exception("bulk_status_update_crashed", order_id=order_id)
                report.results.append(BulkUpdateResult(order_id, False, error=str(exc), error_code="internal_error"))
                continue
            report.results.append(BulkUpdateResult(order_id, True, change.old_status, change.new_status))
        logger.info(
            "bulk_status_update_finished",
            new_status=str(new_status),
            succeeded=len(report.succeeded),
            failed=len(report.failed),
        )
        return report

    # --- tracking ---

    async def _issue_tracking(self, uow: UnitOfWork, order) -> str:
        now = datetime.now(timezone.utc)
        if not order.tracking_number:
            order.tracking_number = generate_tracking_number()
            order.carrier = order.carrier or DEFAULT_CARRIER
            logger.info("tracking_number_issued", order_id=order.id, tracking_number=order.tracking_number)
        if order.shipping_date is None:
            order.shipping_date = now
        order.tracking_status = OrderStatus.SHIPPED.value
        order.tracking_updated_at = now
        await TrackingRepository.add_history(
            uow.session,
            TrackingHistory(
                order_id=order.id,
                tracking_number=order.tracking_number,
                status=OrderStatus.SHIPPED.value,
                status_description="Order shipped",
                timestamp=now.isoformat(),
            ),
        )
        return order.tracking_number

    async def ensure_tracking_number(self, order_id: int) -> str:
        """Return the order's tracking number, issuing one if it has none."""
        async with UnitOfWork(self._session_factory) as uow:
            order = await OrderRepository.get_order_for_update(uow.session, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            if not order.tracking_number:
                order.tracking_number = generate_tracking_number()
                order.carrier = order.carrier or DEFAULT_CARRIER
                logger.info("tracking_number_issued", order_id=order_id, tracking_number=order.tracking_number)
            return order.tracking_number

    async def set_tracking_number(
        self,
        order_id: int,
        tracking_number: str,
        carrier: str = DEFAULT_CARRIER,
        actor: int | None = None,
    ) -> str:
        tracking_number = (tracking_number or "").strip()
        if not tracking_number:
            raise ValidationError("Tracking number must not be empty")
        async with UnitOfWork(self._session_factory) as uow:
            order = await OrderRepository.get_order_for_update(uow.session, order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            holder = await OrderRepository.get_by_tracking_number(uow.session, tracking_number)
            if holder is not None and holder.id != order_id:
                raise ValidationError(
                    f"Tracking number {tracking_number} is already assigned to order {holder.id}",
                    tracking_number=tracking_number,
                )
            order.tracking_number = tracking_number
            order.carrier = carrier
            order.tracking_updated_at = datetime.now(timezone.utc)
            await StatusHistoryRepository.append(
                uow.session,
                order_id,
                order.status.value,
                order.status.value,
                changed_by=actor,
                reason=f"Tracking number set: {tracking_number} ({carrier})",
            )
        logger.info("tracking_number_assigned", order_id=order_id, tracking_number=tracking_number, carrier=carrier)
        return tracking_number

    # --- best-effort side effects ---

    async def _refund(self, order_id: int, payment_ref: str, amount: Decimal):
        try:
            result = await self.gateway.refund(payment_ref, amount)
        except PaymentGatewayError as exc:
            logger.error(
                "refund_failed",
                order_id=order_id,
                payment_ref=payment_ref,
                upstream_status=exc.status_code,
                error=exc.message,
            )
            return
        logger.info("refund_initiated", order_id=order_id, payment_ref=payment_ref, refund_id=result.refund_id)

    async def _notify(self, order_id: int, event: NotificationEvent, context: dict | None = None):
        try:
            await self.notifier.send(order_id, event, context)
        except Exception as exc:
            ecomm_notification_failures_total.labels(event=event.value).inc()
            logger.error("notification_failed", order_id=order_id, notification_event=event.value, error=str(exc))
