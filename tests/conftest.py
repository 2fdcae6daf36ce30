import os
import tempfile

# Settings and the API key are read at import time
_DB_DIR = tempfile.mkdtemp(prefix="fulfillment-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/default.db"
os.environ["OTEL_ENABLED"] = "false"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "whsec_test"
os.environ["CARRIER_ADAPTER"] = "fake"

from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from services.inventory_service.models import ProductVariant
from services.inventory_service.repository import VariantRepository
from services.order_service import models as order_models  # noqa: F401
from services.order_service.models import Order, OrderStatusHistory
from services.order_service.repository import ChannelRepository
from services.orchestrator.lifecycle import OrderLifecycleManager
from services.payment_service.gateway import PaymentGateway
from services.payment_service.models import Payment
from services.subscription_service import models as subscription_models  # noqa: F401
from services.tracking_service import models as tracking_models  # noqa: F401
from shared.config.database import UnitOfWork, init_models

from tests.fakes import WEBHOOK_SECRET, FakeProcessor, RecordingNotifier


@pytest.fixture
async def engine(tmp_path):
    # A file database so concurrent connections share state and serialize writes
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'fulfillment.db'}", connect_args={"timeout": 30}
    )
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def processor():
    return FakeProcessor()


@pytest.fixture
async def gateway(processor):
    client = httpx.AsyncClient(base_url="https://processor.test", transport=httpx.MockTransport(processor))
    gateway = PaymentGateway(
        base_url="https://processor.test", api_key="sk_test", webhook_secret=WEBHOOK_SECRET, http_client=client
    )
    yield gateway
    await gateway.aclose()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def manager(gateway, notifier, session_factory):
    return OrderLifecycleManager(gateway, notifier, session_factory=session_factory, channel="PWA", currency="GBP")


@pytest.fixture
async def variants(session_factory):
    """Seed the channel and two variants: a 9.99 tee (10 in stock) and a 24.50 mug (3 in stock)."""
    async with UnitOfWork(session_factory) as uow:
        await ChannelRepository.ensure_channel(uow.session, "PWA")
        tee = await VariantRepository.create_variant(
            uow.session,
            ProductVariant(sku="TEE-BLK-M", name="Tee black M", price=Decimal("9.99"), inventory_quantity=10),
        )
        mug = await VariantRepository.create_variant(
            uow.session,
            ProductVariant(sku="MUG-WHT", name="Mug white", price=Decimal("24.50"), inventory_quantity=3),
        )
    return {"tee": tee.id, "mug": mug.id}


@pytest.fixture
def db(session_factory):
    """Read helpers running in fresh sessions."""

    class Reader:
        async def stock(self, variant_id):
            async with session_factory() as session:
                return await VariantRepository.get_available(session, variant_id)

        async def order(self, order_id):
            async with session_factory() as session:
                return await session.get(Order, order_id)

        async def orders(self):
            async with session_factory() as session:
                return (await session.execute(select(Order))).scalars().all()

        async def payments(self):
            async with session_factory() as session:
                return (await session.execute(select(Payment))).scalars().all()

        async def history(self, order_id):
            async with session_factory() as session:
                result = await session.execute(
                    select(OrderStatusHistory)
                    .where(OrderStatusHistory.order_id == order_id)
                    .order_by(OrderStatusHistory.id)
                )
                return result.scalars().all()

    return Reader()


@pytest.fixture
def shipping_address():
    return {"name": "Ada Lovelace", "line1": "1 High Street", "city": "London", "postcode": "N1 1AA", "country": "GB"}
