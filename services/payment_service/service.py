"""Processor webhook handling.

The payment row is updated in its own transaction first; the order then
moves through the lifecycle manager so the usual history, stock release and
notifications apply. An order that can no longer take the transition (for
example a replayed event) is logged and left alone.
"""
import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from services.order_service.models import OrderStatus
from services.orchestrator.lifecycle import OrderLifecycleManager
from shared.config.database import UnitOfWork
from shared.errors import InvalidStateTransitionError, OrderNotFoundError

from .models import PaymentStatus
from .repository import PaymentRepository

logger = structlog.get_logger(__name__)

EVENT_OUTCOMES = {
    "payment_intent.succeeded": (PaymentStatus.SUCCEEDED, OrderStatus.PROCESSING),
    "payment_intent.payment_failed": (PaymentStatus.FAILED, OrderStatus.CANCELLED),
    "payment_intent.canceled": (PaymentStatus.CANCELED, OrderStatus.CANCELLED),
}


class PaymentWebhookService:
    def __init__(self, manager: OrderLifecycleManager, session_factory: async_sessionmaker | None = None):
        self._manager = manager
        self._session_factory = session_factory or manager.session_factory

    async def handle_event(self, event_type: str | None, data: dict) -> dict:
        if event_type == "charge.dispute.created":
            logger.warning("payment_dispute_created", dispute_id=data.get("id"), payment_ref=data.get("payment_id"))
            return {"event_type": event_type, "handled": True}

        outcome = EVENT_OUTCOMES.get(event_type)
        if outcome is None:
            logger.info("payment_webhook_ignored", event_type=event_type)
            return {"event_type": event_type, "handled": False}
        payment_status, order_status = outcome

        intent_id = data.get("id")
        async with UnitOfWork(self._session_factory) as uow:
            payment = await PaymentRepository.get_by_external_ref(uow.session, intent_id) if intent_id else None
            if payment is None:
                logger.warning("payment_webhook_unknown_intent", event_type=event_type, intent_id=intent_id)
                return {"event_type": event_type, "handled": False}
            payment.status = payment_status
            order_id = payment.order_id

        logger.info(
            "payment_status_updated",
            event_type=event_type,
            intent_id=intent_id,
            order_id=order_id,
            payment_status=payment_status.value,
        )

        result = {
            "event_type": event_type,
            "handled": True,
            "order_id": order_id,
            "payment_status": payment_status.value,
            "order_status": None,
        }
        try:
            change = await self._manager.update_status(order_id, order_status, reason=f"Payment webhook: {event_type}")
        except (InvalidStateTransitionError, OrderNotFoundError) as exc:
            logger.info("payment_webhook_transition_skipped", order_id=order_id, event_type=event_type, reason=exc.message)
            return result
        result["order_status"] = change.new_status.value
        return result
