from shared.errors import InvalidStateTransitionError

from .models import OrderStatus

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.REFUNDED}),
}

# Statuses in which the order still holds reserved stock
RESERVING_STATES = frozenset({OrderStatus.PENDING, OrderStatus.PROCESSING})


def can_transition(old_status: OrderStatus, new_status: OrderStatus) -> bool:
    return new_status in ALLOWED_TRANSITIONS.get(old_status, frozenset())


def validate_transition(order_id: int, old_status: OrderStatus, new_status: OrderStatus):
    if not can_transition(old_status, new_status):
        raise InvalidStateTransitionError(order_id, old_status.value, new_status.value)
