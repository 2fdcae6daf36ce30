import httpx
import pytest

from services.tracking_service.client import CarrierTrackingClient, format_tracking_response, map_status
from services.tracking_service.fake_client import FakeCarrierTrackingClient
from services.tracking_service.repository import TrackingStore
from services.tracking_service.schemas import TrackingStatus
from shared.errors import CarrierUnavailableError
from shared.resilience import CircuitBreaker, CircuitState, RetryPolicy

from tests.fakes import FakeCarrierApi, connect_error, no_sleep


def make_client(api, store=None, ttl=30, threshold=3):
    http_client = httpx.AsyncClient(base_url="https://carrier.test", transport=httpx.MockTransport(api))
    return CarrierTrackingClient(
        "https://carrier.test",
        "client-id",
        "client-secret",
        store=store,
        breaker=CircuitBreaker("carrier_auth_test", failure_threshold=threshold, recovery_timeout=30.0),
        retry_policy=RetryPolicy(max_retries=3, base_delay=1.0),
        http_client=http_client,
        cache_ttl_minutes=ttl,
        sleep=no_sleep,
    )


async def place_order(manager, variants, shipping_address):
    created = await manager.create_order(
        [{"variant_id": variants["tee"], "quantity": 1}], shipping_address, "APPLE_PAY"
    )
    return created.order_id


class TestStatusMapping:
    @pytest.mark.parametrize(
        "code,expected",
        [
            ("ACCEPTED", TrackingStatus.ACCEPTED),
            ("PROCESSED", TrackingStatus.IN_TRANSIT),
            ("DESPATCHED", TrackingStatus.IN_TRANSIT),
            ("DELIVERY_ATTEMPTED", TrackingStatus.OUT_FOR_DELIVERY),
            ("COLLECTION", TrackingStatus.OUT_FOR_DELIVERY),
            ("DELIVERED", TrackingStatus.DELIVERED),
            ("RETURNED", TrackingStatus.RETURNED),
            ("DAMAGED", TrackingStatus.EXCEPTION),
            ("LOST", TrackingStatus.EXCEPTION),
            ("SOMETHING_NEW", TrackingStatus.UNKNOWN),
            (None, TrackingStatus.UNKNOWN),
        ],
    )
    def test_event_codes(self, code, expected):
        assert map_status(code) is expected

    def test_latest_event_drives_summary(self):
        info = format_tracking_response(FakeCarrierApi.mailpiece("RM1234567890GB"), "ROYAL_MAIL")
        assert info.status is TrackingStatus.IN_TRANSIT
        assert info.location == "Birmingham Hub"
        assert info.estimated_delivery == "2024-01-04"
        assert not info.is_delivered
        assert len(info.events) == 2

    def test_no_events(self):
        info = format_tracking_response({"mailPieceId": "RM1"}, "ROYAL_MAIL")
        assert info.status is TrackingStatus.UNKNOWN
        assert info.status_description == "Unknown status"
        assert info.events == []


class TestRetryAndAuth:
    async def test_transient_failures_are_retried(self):
        api = FakeCarrierApi([503, 503, 200])
        client = make_client(api)

        info = await client.get_tracking_info("RM1234567890GB")

        assert info.tracking_number == "RM1234567890GB"
        assert api.fetch_calls == 3
        assert api.token_calls == 1
        await client.aclose()

    async def test_connection_errors_are_retried(self):
        api = FakeCarrierApi([connect_error, 200])
        client = make_client(api)
        assert (await client.get_tracking_info("RM1")).status is TrackingStatus.IN_TRANSIT
        assert api.fetch_calls == 2
        await client.aclose()

    async def test_exhausted_retries_surface_as_carrier_unavailable(self):
        api = FakeCarrierApi([503])
        client = make_client(api)
        with pytest.raises(CarrierUnavailableError) as exc_info:
            await client.get_tracking_info("RM1")
        assert exc_info.value.status_code == 503
        assert api.fetch_calls == 4
        await client.aclose()

    async def test_not_found_is_not_retried(self):
        api = FakeCarrierApi([404])
        client = make_client(api)
        with pytest.raises(CarrierUnavailableError) as exc_info:
            await client.get_tracking_info("RM1")
        assert exc_info.value.status_code == 404
        assert api.fetch_calls == 1
        await client.aclose()

    async def test_token_is_reused_until_expiry(self):
        api = FakeCarrierApi([200])
        client = make_client(api)
        await client.get_tracking_info("RM1")
        await client.get_tracking_info("RM2")
        assert api.token_calls == 1
        await client.aclose()

    async def test_rejected_token_is_refreshed_and_request_repeated(self):
        api = FakeCarrierApi([401, 200])
        client = make_client(api)

        info = await client.get_tracking_info("RM1")

        assert info.tracking_number == "RM1"
        assert api.token_calls == 2
        assert api.fetch_calls == 2
        await client.aclose()

    async def test_persistent_401_surfaces_as_carrier_unavailable(self):
        api = FakeCarrierApi([401])
        client = make_client(api)
        with pytest.raises(CarrierUnavailableError) as exc_info:
            await client.get_tracking_info("RM1")
        assert exc_info.value.status_code == 401
        assert api.fetch_calls == 2
        await client.aclose()

    @pytest.mark.parametrize(
        "answer",
        [
            lambda request: httpx.Response(200, json={"unexpected": True}),
            lambda request: httpx.Response(200, text="<html>maintenance</html>"),
            lambda request: httpx.Response(200, json={"mailPieceId": "RM1", "events": ["DELIVERED"]}),
        ],
    )
    async def test_malformed_tracking_answer_surfaces_as_carrier_unavailable(self, answer):
        api = FakeCarrierApi([answer])
        client = make_client(api)
        with pytest.raises(CarrierUnavailableError) as exc_info:
            await client.get_tracking_info("RM1")
        assert exc_info.value.status_code == 200
        assert api.fetch_calls == 1
        await client.aclose()

    async def test_token_answer_without_access_token_surfaces_as_carrier_unavailable(self):
        api = FakeCarrierApi([200], token_body={"token_type": "bearer"})
        client = make_client(api)
        with pytest.raises(CarrierUnavailableError, match="access token"):
            await client.get_tracking_info("RM1")
        assert api.fetch_calls == 0
        assert client.breaker.failure_count == 1
        await client.aclose()

    async def test_auth_failures_open_the_circuit(self):
        api = FakeCarrierApi([200], token_status=503)
        client = make_client(api, threshold=3)

        for _ in range(3):
            with pytest.raises(CarrierUnavailableError):
                await client.get_tracking_info("RM1")
        assert client.breaker.state is CircuitState.OPEN
        assert api.token_calls == 3

        with pytest.raises(CarrierUnavailableError, match="circuit is open"):
            await client.get_tracking_info("RM1")
        assert api.token_calls == 3
        assert api.fetch_calls == 0
        await client.aclose()


class TestTrackingCache:
    async def test_second_read_within_ttl_hits_cache(self, session_factory):
        api = FakeCarrierApi([200])
        client = make_client(api, store=TrackingStore(session_factory))

        first = await client.get_tracking_info_with_cache("RM1234567890GB")
        second = await client.get_tracking_info_with_cache("RM1234567890GB")

        assert api.fetch_calls == 1
        assert second == first
        await client.aclose()

    async def test_expired_entry_is_refetched(self, session_factory):
        api = FakeCarrierApi([200])
        client = make_client(api, store=TrackingStore(session_factory), ttl=0)

        await client.get_tracking_info_with_cache("RM1")
        await client.get_tracking_info_with_cache("RM1")

        assert api.fetch_calls == 2
        await client.aclose()

    async def test_order_tracking_is_recorded_once_per_event(
        self, session_factory, manager, variants, shipping_address, db
    ):
        order_id = await place_order(manager, variants, shipping_address)
        store = TrackingStore(session_factory)
        client = make_client(FakeCarrierApi([200]), store=store, ttl=0)

        await client.get_tracking_info_with_cache("RM1234567890GB", order_id=order_id)
        await client.get_tracking_info_with_cache("RM1234567890GB", order_id=order_id)

        history = await store.history_for_order(order_id)
        assert sorted(row.status for row in history) == ["ACCEPTED", "IN_TRANSIT"]
        order = await db.order(order_id)
        assert order.tracking_status == "IN_TRANSIT"
        assert order.estimated_delivery_date == "2024-01-04"
        assert order.tracking_updated_at is not None
        await client.aclose()


class TestFakeCarrier:
    async def test_progress_controls_latest_status(self):
        carrier = FakeCarrierTrackingClient(progress=4)
        info = await carrier.get_tracking_info("RM1")
        assert info.status is TrackingStatus.DELIVERED
        assert info.is_delivered
        assert len(info.events) == 4

    async def test_configured_failure(self):
        carrier = FakeCarrierTrackingClient()
        carrier.configure(should_succeed=False)
        with pytest.raises(CarrierUnavailableError):
            await carrier.get_tracking_info_with_cache("RM1")
        assert carrier.calls == ["RM1"]
