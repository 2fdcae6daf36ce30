from prometheus_client import Counter, Histogram, Gauge

# Business Metrics
ecomm_orders_created_total = Counter(
    "ecomm_orders_created_total",
    "Order creation attempts",
    ["outcome"]  # Labels: 'created' or the error code
)

ecomm_order_creation_duration_seconds = Histogram(
    "ecomm_order_creation_duration_seconds",
    "Order creation duration in seconds"
)

ecomm_order_transitions_total = Counter(
    "ecomm_order_transitions_total",
    "Order status transitions applied",
    ["from_status", "to_status"]
)

ecomm_saga_compensation_total = Counter(
    "ecomm_saga_compensation_total",
    "Total saga compensations triggered",
    ["step_name"]  # Labels: 'open_payment_intent', ...
)

ecomm_inventory_reservations_total = Counter(
    "ecomm_inventory_reservations_total",
    "Inventory reservation outcomes",
    ["outcome"]  # Labels: 'reserved', 'insufficient', 'released'
)

ecomm_payment_gateway_errors_total = Counter(
    "ecomm_payment_gateway_errors_total",
    "Failed calls to the payment processor",
    ["operation"]
)

ecomm_notification_failures_total = Counter(
    "ecomm_notification_failures_total",
    "Best-effort notifications that failed to send",
    ["event"]
)

ecomm_circuit_breaker_state = Gauge(
    "ecomm_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["breaker"]
)

ecomm_retry_attempts_total = Counter(
    "ecomm_retry_attempts_total",
    "Retries scheduled after a transient failure",
    ["operation"]
)

ecomm_tracking_cache_total = Counter(
    "ecomm_tracking_cache_total",
    "Tracking cache lookups",
    ["result"]  # Labels: 'hit', 'miss', 'error'
)
