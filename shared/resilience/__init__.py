from .circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState
from .retry import RetryPolicy, is_retryable_error, with_retry

__all__ = [
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
    "RetryPolicy",
    "is_retryable_error",
    "with_retry",
]
