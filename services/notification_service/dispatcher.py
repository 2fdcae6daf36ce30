"""Customer notification dispatch.

The engine only decides *that* a customer should hear about an order event;
rendering and delivery belong to the notification service. Callers treat
every dispatcher as best-effort.
"""
import enum
from abc import ABC, abstractmethod

import httpx
import structlog

logger = structlog.get_logger(__name__)


class NotificationEvent(str, enum.Enum):
    ORDER_CONFIRMED = "ORDER_CONFIRMED"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_REFUNDED = "ORDER_REFUNDED"


class NotificationDispatcher(ABC):
    @abstractmethod
    async def send(self, order_id: int, event: NotificationEvent, context: dict | None = None):
        ...

    async def aclose(self):
        return None


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Used when no notification service is configured."""

    async def send(self, order_id: int, event: NotificationEvent, context: dict | None = None):
        logger.info("notification_logged", order_id=order_id, notification_event=event.value, **(context or {}))


class HttpNotificationDispatcher(NotificationDispatcher):
    """Posts events to the notification service with the internal API key."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 5.0,
                 http_client: httpx.AsyncClient | None = None):
        self._headers = {"X-Internal-API-Key": api_key}
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def send(self, order_id: int, event: NotificationEvent, context: dict | None = None):
        payload = {"order_id": order_id, "event": event.value, "context": context or {}}
        resp = await self._client.post("/notifications", json=payload, headers=self._headers)
        resp.raise_for_status()

    async def aclose(self):
        await self._client.aclose()
