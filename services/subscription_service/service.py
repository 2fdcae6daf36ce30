"""Subscription renewal batch.

Walks the subscriptions that are due, one at a time, each renewal in its own
transaction. A failing renewal is recorded in the report and leaves the
subscription due, so the next run retries it.
"""
import calendar
from datetime import date, datetime, timedelta, timezone

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from services.orchestrator.lifecycle import OrderCreated, OrderLifecycleManager
from shared.config.database import UnitOfWork
from shared.errors import FulfillmentError

from .models import SubscriptionInterval, SubscriptionStatus
from .repository import SubscriptionRepository

logger = structlog.get_logger(__name__)


def add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_order_date(from_date: date, interval: SubscriptionInterval) -> date:
    if interval is SubscriptionInterval.WEEKLY:
        return from_date + timedelta(days=7)
    if interval is SubscriptionInterval.BIWEEKLY:
        return from_date + timedelta(days=14)
    return add_months(from_date, 1)


class SubscriptionRenewalJob:
    def __init__(self, manager: OrderLifecycleManager, session_factory: async_sessionmaker | None = None):
        self._manager = manager
        self._session_factory = session_factory or manager.session_factory

    async def run(self, today: date | None = None) -> dict:
        today = today or datetime.now(timezone.utc).date()
        async with UnitOfWork(self._session_factory) as uow:
            due_ids = await SubscriptionRepository.list_due_ids(uow.session, today)

        report = {"processed": 0, "succeeded": 0, "failed": []}
        logger.info("subscription_renewals_started", due=len(due_ids), run_date=today.isoformat())
        for subscription_id in due_ids:
            try:
                created = await self._renew(subscription_id, today)
            except FulfillmentError as exc:
                report["processed"] += 1
                report["failed"].append({"subscription_id": subscription_id, "error": exc.message})
                logger.warning("subscription_renewal_failed", subscription_id=subscription_id, error_code=exc.code)
                continue
            except Exception as exc:
                report["processed"] += 1
                report["failed"].append({"subscription_id": subscription_id, "error": str(exc)})
                logger.exception("subscription_renewal_crashed", subscription_id=subscription_id)
                continue
            if created is None:
                # Paused, cancelled or renewed by a concurrent run since the due list was read
                continue
            report["processed"] += 1
            report["succeeded"] += 1
            await self._manager.notify_order_confirmed(created)

        logger.info(
            "subscription_renewals_finished",
            processed=report["processed"],
            succeeded=report["succeeded"],
            failed=len(report["failed"]),
        )
        return report

    async def _renew(self, subscription_id: int, today: date) -> OrderCreated | None:
        created = None
        try:
            async with UnitOfWork(self._session_factory) as uow:
                subscription = await SubscriptionRepository.get_for_update(uow.session, subscription_id)
                if (
                    subscription is None
                    or subscription.status is not SubscriptionStatus.ACTIVE
                    or subscription.next_order_date > today
                ):
                    return None
                created = await self._manager.create_order(
                    [{"variant_id": subscription.variant_id, "quantity": subscription.quantity}],
                    subscription.shipping_address,
                    subscription.payment_method,
                    buyer_id=subscription.user_id,
                    uow=uow,
                )
                await SubscriptionRepository.link_order(uow.session, subscription_id, created.order_id)
                subscription.last_order_date = today
                subscription.next_order_date = next_order_date(today, subscription.interval)
        except Exception:
            if created is not None:
                # The order rolled back with the transaction; the processor intent did not
                await self._manager.cancel_payment_intent(created.payment_intent.intent_id)
            raise

        logger.info(
            "subscription_renewed",
            subscription_id=subscription_id,
            order_id=created.order_id,
            next_order_date=next_order_date(today, subscription.interval).isoformat(),
        )
        return created
