from .setup import setup_observability, configure_logging
from .metrics import (
    ecomm_orders_created_total,
    ecomm_order_creation_duration_seconds,
    ecomm_order_transitions_total,
    ecomm_saga_compensation_total,
    ecomm_inventory_reservations_total,
    ecomm_payment_gateway_errors_total,
    ecomm_notification_failures_total,
    ecomm_circuit_breaker_state,
    ecomm_retry_attempts_total,
    ecomm_tracking_cache_total,
)
