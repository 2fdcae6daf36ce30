"""Process-wide collaborators of the lifecycle manager.

Provides get_*/set_*/reset_* for the payment gateway, the carrier tracking
client, the notification dispatcher and the manager itself so routes and
jobs share one instance and tests can swap any of them.
"""
from services.notification_service.dispatcher import (
    HttpNotificationDispatcher,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
)
from services.payment_service.gateway import PaymentGateway
from services.tracking_service.client import CarrierTrackingClient, CarrierTrackingPort
from services.tracking_service.fake_client import FakeCarrierTrackingClient
from services.tracking_service.repository import TrackingStore
from shared.config.settings import get_settings
from shared.resilience import CircuitBreaker, RetryPolicy
from shared.security.api_key import internal_api_key

from .lifecycle import OrderLifecycleManager

_gateway: PaymentGateway | None = None
_tracking_client: CarrierTrackingPort | None = None
_notifier: NotificationDispatcher | None = None
_manager: OrderLifecycleManager | None = None


def get_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        settings = get_settings()
        _gateway = PaymentGateway(
            base_url=settings.payment_api_url,
            api_key=settings.payment_api_key,
            webhook_secret=settings.payment_webhook_secret,
            timeout=settings.payment_timeout_seconds,
        )
    return _gateway


def set_gateway(gateway: PaymentGateway) -> None:
    global _gateway
    _gateway = gateway


def get_tracking_client() -> CarrierTrackingPort:
    """Return the configured carrier client, selected by CARRIER_ADAPTER."""
    global _tracking_client
    if _tracking_client is None:
        settings = get_settings()
        store = TrackingStore()
        if settings.carrier_adapter == "fake":
            _tracking_client = FakeCarrierTrackingClient(store=store)
        elif settings.carrier_adapter == "http":
            _tracking_client = CarrierTrackingClient(
                base_url=settings.carrier_api_url,
                client_id=settings.carrier_client_id,
                client_secret=settings.carrier_client_secret,
                store=store,
                breaker=CircuitBreaker(
                    "carrier_auth",
                    failure_threshold=settings.carrier_failure_threshold,
                    recovery_timeout=settings.carrier_recovery_timeout_seconds,
                ),
                retry_policy=RetryPolicy(
                    max_retries=settings.carrier_max_retries,
                    base_delay=settings.carrier_retry_base_delay,
                    max_delay=settings.carrier_retry_max_delay,
                ),
                auth_timeout=settings.carrier_auth_timeout_seconds,
                fetch_timeout=settings.carrier_fetch_timeout_seconds,
                cache_ttl_minutes=settings.tracking_cache_ttl_minutes,
            )
        else:
            raise ValueError(f"Unknown carrier adapter: {settings.carrier_adapter}")
    return _tracking_client


def set_tracking_client(client: CarrierTrackingPort) -> None:
    global _tracking_client
    _tracking_client = client


def get_notifier() -> NotificationDispatcher:
    global _notifier
    if _notifier is None:
        settings = get_settings()
        if settings.notification_url:
            _notifier = HttpNotificationDispatcher(settings.notification_url, internal_api_key())
        else:
            _notifier = LoggingNotificationDispatcher()
    return _notifier


def set_notifier(notifier: NotificationDispatcher) -> None:
    global _notifier
    _notifier = notifier


def get_lifecycle_manager() -> OrderLifecycleManager:
    global _manager
    if _manager is None:
        settings = get_settings()
        _manager = OrderLifecycleManager(
            gateway=get_gateway(),
            notifier=get_notifier(),
            channel=settings.order_channel,
            currency=settings.payment_currency,
        )
    return _manager


def set_lifecycle_manager(manager: OrderLifecycleManager) -> None:
    global _manager
    _manager = manager


def reset_dependencies() -> None:
    """Forget every cached collaborator (useful for tests)."""
    global _gateway, _tracking_client, _notifier, _manager
    _gateway = None
    _tracking_client = None
    _notifier = None
    _manager = None
