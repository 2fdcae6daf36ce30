import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from services.order_service.repository import OrderRepository
from shared.errors import OrderNotFoundError

from .client import CarrierTrackingPort
from .repository import TrackingRepository
from .schemas import OrderTrackingResponse, TrackingHistoryEntry

logger = structlog.get_logger(__name__)


class TrackingService:
    @staticmethod
    async def get_order_tracking(db: AsyncSession, order_id: int, client: CarrierTrackingPort) -> OrderTrackingResponse:
        """Carrier data plus stored history for an order.

        An order without a tracking number answers ``has_tracking=False``;
        a carrier outage propagates as CarrierUnavailableError.
        """
        order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        if not order.tracking_number:
            return OrderTrackingResponse(
                order_id=order_id,
                has_tracking=False,
                message="No tracking information available for this order",
            )

        info = await client.get_tracking_info_with_cache(order.tracking_number, order_id=order_id)
        # The client stored new events in its own transaction
        await db.refresh(order)
        history = await TrackingRepository.list_history(db, order_id)
        return OrderTrackingResponse(
            order_id=order_id,
            has_tracking=True,
            tracking_number=order.tracking_number,
            carrier=order.carrier,
            shipping_date=order.shipping_date,
            estimated_delivery=info.estimated_delivery or order.estimated_delivery_date,
            current_status=order.tracking_status,
            last_updated=order.tracking_updated_at,
            tracking_data=info,
            history=[TrackingHistoryEntry.model_validate(entry) for entry in history],
        )
