from sqlalchemy.ext.asyncio import AsyncSession

from services.payment_service.repository import PaymentRepository
from shared.errors import OrderNotFoundError

from .repository import OrderRepository, StatusHistoryRepository
from .schemas import OrderDetailResponse, OrderResponse, PaymentResponse, StatusHistoryResponse


class OrderService:
    @staticmethod
    async def get_order_details(db: AsyncSession, order_id: int) -> OrderDetailResponse:
        """Order with its items, payment and status history (newest first)."""
        order = await OrderRepository.get_order(db, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        payment = await PaymentRepository.get_for_order(db, order_id)
        history = await StatusHistoryRepository.list_for_order(db, order_id, newest_first=True)
        return OrderDetailResponse(
            **OrderResponse.model_validate(order).model_dump(),
            payment=PaymentResponse.model_validate(payment) if payment else None,
            history=[StatusHistoryResponse.model_validate(entry) for entry in history],
        )
