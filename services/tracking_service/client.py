"""Carrier tracking client.

Shields callers from an unreliable carrier API:

- the OAuth2 client-credentials token is cached until shortly before it expires;
- the token exchange runs behind a process-wide circuit breaker;
- tracking fetches are retried with exponential backoff on transient failures;
- results are cached per tracking number for a fixed TTL.

Anything that still fails surfaces as CarrierUnavailableError, which callers
can tell apart from an order that simply has no tracking number yet.
"""
import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

import httpx
import structlog

from shared.errors import CarrierUnavailableError
from shared.observability import ecomm_tracking_cache_total
from shared.resilience import CircuitBreaker, CircuitOpenError, RetryPolicy, is_retryable_error, with_retry

from .repository import TrackingStore
from .schemas import TrackingEvent, TrackingInfo, TrackingStatus

logger = structlog.get_logger(__name__)

CARRIER_STATUS_MAP = {
    "ACCEPTED": TrackingStatus.ACCEPTED,
    "PROCESSED": TrackingStatus.IN_TRANSIT,
    "DESPATCHED": TrackingStatus.IN_TRANSIT,
    "DELIVERED": TrackingStatus.DELIVERED,
    "DELIVERY_ATTEMPTED": TrackingStatus.OUT_FOR_DELIVERY,
    "COLLECTION": TrackingStatus.OUT_FOR_DELIVERY,
    "RETURNED": TrackingStatus.RETURNED,
    "DAMAGED": TrackingStatus.EXCEPTION,
    "LOST": TrackingStatus.EXCEPTION,
}

# Refresh the token this many seconds before the carrier says it expires
TOKEN_EXPIRY_MARGIN_SECONDS = 30


def map_status(event_code: str | None) -> TrackingStatus:
    return CARRIER_STATUS_MAP.get((event_code or "").upper(), TrackingStatus.UNKNOWN)


def format_tracking_response(data: dict[str, Any], carrier: str) -> TrackingInfo:
    events = data.get("events") or []
    latest = events[-1] if events else {}
    return TrackingInfo(
        tracking_number=data["mailPieceId"],
        carrier=carrier,
        status=map_status(latest.get("eventCode")),
        status_description=latest.get("eventDescription") or "Unknown status",
        location=latest.get("location") or "Unknown location",
        timestamp=latest.get("eventDateTime"),
        estimated_delivery=data.get("estimatedDeliveryDate"),
        is_delivered=latest.get("eventCode") == "DELIVERED",
        events=[
            TrackingEvent(
                status=map_status(event.get("eventCode")),
                description=event.get("eventDescription"),
                location=event.get("location"),
                timestamp=event.get("eventDateTime"),
                carrier_data=event,
            )
            for event in events
        ],
    )


class CarrierTrackingPort(ABC):
    """What the rest of the engine needs from a carrier integration."""

    carrier: str

    @abstractmethod
    async def get_tracking_info(self, tracking_number: str) -> TrackingInfo:
        ...

    @abstractmethod
    async def get_tracking_info_with_cache(self, tracking_number: str, order_id: int | None = None) -> TrackingInfo:
        ...

    async def aclose(self):
        return None


class CarrierTrackingClient(CarrierTrackingPort):
    carrier = "ROYAL_MAIL"

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        store: TrackingStore | None = None,
        breaker: CircuitBreaker | None = None,
        retry_policy: RetryPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
        auth_timeout: float = 5.0,
        fetch_timeout: float = 10.0,
        cache_ttl_minutes: int = 30,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client_id = client_id
        self._client_secret = client_secret
        self._store = store
        self._breaker = breaker or CircuitBreaker("carrier_auth", failure_threshold=3, recovery_timeout=30.0)
        self._retry_policy = retry_policy or RetryPolicy()
        self._http = http_client or httpx.AsyncClient(base_url=base_url)
        self._auth_timeout = auth_timeout
        self._fetch_timeout = fetch_timeout
        self._cache_ttl_minutes = cache_ttl_minutes
        self._sleep = sleep
        self._clock = clock
        self._access_token: str | None = None
        self._token_expiry = 0.0
        self._token_lock = asyncio.Lock()

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def aclose(self):
        await self._http.aclose()

    def _token_valid(self) -> bool:
        return self._access_token is not None and self._clock() < self._token_expiry

    async def _request_token(self) -> str:
        response = await self._http.post(
            "/oauth/v2/token",
            data={
                "grant_type": "client_credentials",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
            timeout=self._auth_timeout,
        )
        response.raise_for_status()
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict) or not payload.get("access_token"):
            logger.error("carrier_auth_malformed_response", status_code=response.status_code)
            raise CarrierUnavailableError(
                "Carrier token response lacks an access token", status_code=response.status_code
            )
        expires_in = float(payload.get("expires_in") or 3600)
        self._access_token = payload["access_token"]
        self._token_expiry = self._clock() + max(expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0.0)
        return self._access_token

    async def authenticate(self) -> str:
        if self._token_valid():
            return self._access_token
        async with self._token_lock:
            # Another task may have refreshed the token while we waited
            if self._token_valid():
                return self._access_token
            try:
                return await self._breaker.execute(self._request_token)
            except CircuitOpenError as exc:
                logger.warning("carrier_auth_short_circuited", retry_after=exc.retry_after)
                raise CarrierUnavailableError("Carrier authentication circuit is open") from exc
            except httpx.HTTPStatusError as exc:
                logger.error("carrier_auth_failed", status_code=exc.response.status_code)
                raise CarrierUnavailableError(
                    "Failed to authenticate with carrier API", status_code=exc.response.status_code
                ) from exc
            except httpx.HTTPError as exc:
                logger.error("carrier_auth_failed", error=str(exc))
                raise CarrierUnavailableError(f"Failed to authenticate with carrier API: {exc}") from exc

    async def _get_mailpiece(self, tracking_number: str) -> httpx.Response:
        token = await self.authenticate()
        return await self._http.get(
            f"/mailpieces/v2/{tracking_number}",
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            timeout=self._fetch_timeout,
        )

    async def _fetch_tracking(self, tracking_number: str) -> TrackingInfo:
        response = await self._get_mailpiece(tracking_number)
        if response.status_code == 401:
            # Token revoked before its expiry: refresh it and repeat once
            self._access_token = None
            response = await self._get_mailpiece(tracking_number)
            if response.status_code == 401:
                self._access_token = None
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or not data.get("mailPieceId"):
            logger.error("carrier_tracking_malformed_response", tracking_number=tracking_number)
            raise CarrierUnavailableError(
                f"Malformed tracking response for {tracking_number}", status_code=response.status_code
            )
        try:
            return format_tracking_response(data, self.carrier)
        except (ValueError, TypeError, AttributeError) as exc:
            logger.error("carrier_tracking_malformed_response", tracking_number=tracking_number, error=str(exc))
            raise CarrierUnavailableError(
                f"Malformed tracking response for {tracking_number}", status_code=response.status_code
            ) from exc

    async def get_tracking_info(self, tracking_number: str) -> TrackingInfo:
        try:
            return await with_retry(
                lambda: self._fetch_tracking(tracking_number),
                self._retry_policy,
                retry_condition=is_retryable_error,
                sleep=self._sleep,
                operation="carrier_tracking_fetch",
            )
        except CarrierUnavailableError:
            raise
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            retried = is_retryable_error(exc)
            logger.error(
                "carrier_tracking_failed",
                tracking_number=tracking_number,
                status_code=status_code,
                retries_exhausted=retried,
            )
            raise CarrierUnavailableError(
                f"Failed to get tracking info for {tracking_number}", status_code=status_code
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("carrier_tracking_failed", tracking_number=tracking_number, error=str(exc))
            raise CarrierUnavailableError(f"Failed to get tracking info for {tracking_number}: {exc}") from exc

    async def _read_cache(self, tracking_number: str) -> TrackingInfo | None:
        if self._store is None:
            return None
        try:
            cached = await self._store.get_cached(tracking_number)
        except Exception as exc:
            ecomm_tracking_cache_total.labels(result="error").inc()
            logger.error("tracking_cache_read_failed", tracking_number=tracking_number, error=str(exc))
            return None
        ecomm_tracking_cache_total.labels(result="hit" if cached else "miss").inc()
        return cached

    async def _write_cache(self, tracking_number: str, info: TrackingInfo):
        if self._store is None:
            return
        try:
            await self._store.put_cached(tracking_number, info, self._cache_ttl_minutes)
        except Exception as exc:
            logger.error("tracking_cache_write_failed", tracking_number=tracking_number, error=str(exc))

    async def get_tracking_info_with_cache(self, tracking_number: str, order_id: int | None = None) -> TrackingInfo:
        info = await self._read_cache(tracking_number)
        if info is None:
            info = await self.get_tracking_info(tracking_number)
            await self._write_cache(tracking_number, info)
        if order_id is not None and self._store is not None:
            added = await self._store.record_tracking(order_id, info)
            if added:
                logger.info("tracking_events_recorded", order_id=order_id, new_events=added)
        return info
