"""Fake carrier: deterministic tracking data for development and tests.

Selected explicitly (CARRIER_ADAPTER=fake or injected in tests); the real
client never falls back to invented data on its own.
"""
from datetime import datetime, timedelta, timezone

from shared.errors import CarrierUnavailableError

from .client import CarrierTrackingPort
from .repository import TrackingStore
from .schemas import TrackingEvent, TrackingInfo, TrackingStatus

_SCRIPT = [
    (TrackingStatus.ACCEPTED, "Item accepted at sorting office", "London Sorting Centre"),
    (TrackingStatus.IN_TRANSIT, "Item in transit", "In transit"),
    (TrackingStatus.OUT_FOR_DELIVERY, "Out for delivery", "Local delivery office"),
    (TrackingStatus.DELIVERED, "Delivered", "Delivered to recipient"),
]


class FakeCarrierTrackingClient(CarrierTrackingPort):
    carrier = "ROYAL_MAIL"

    def __init__(self, store: TrackingStore | None = None, progress: int = 2):
        self._store = store
        self.progress = progress
        self.should_succeed = True
        self.failure_reason = "Carrier unavailable"
        self.calls: list[str] = []

    def configure(self, should_succeed: bool = True, progress: int | None = None,
                  failure_reason: str = "Carrier unavailable"):
        """Configure the fake carrier behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        if progress is not None:
            self.progress = progress

    async def get_tracking_info(self, tracking_number: str) -> TrackingInfo:
        self.calls.append(tracking_number)
        if not self.should_succeed:
            raise CarrierUnavailableError(self.failure_reason)

        start = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
        steps = _SCRIPT[: max(1, min(self.progress, len(_SCRIPT)))]
        events = [
            TrackingEvent(
                status=status,
                description=description,
                location=location,
                timestamp=(start + timedelta(hours=6 * index)).isoformat(),
            )
            for index, (status, description, location) in enumerate(steps)
        ]
        latest = events[-1]
        return TrackingInfo(
            tracking_number=tracking_number,
            carrier=self.carrier,
            status=latest.status,
            status_description=latest.description,
            location=latest.location,
            timestamp=latest.timestamp,
            estimated_delivery=(start + timedelta(days=3)).date().isoformat(),
            is_delivered=latest.status is TrackingStatus.DELIVERED,
            events=events,
        )

    async def get_tracking_info_with_cache(self, tracking_number: str, order_id: int | None = None) -> TrackingInfo:
        info = await self.get_tracking_info(tracking_number)
        if order_id is not None and self._store is not None:
            await self._store.record_tracking(order_id, info)
        return info
