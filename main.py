from fastapi import FastAPI

from shared.config.database import UnitOfWork, init_models
from shared.config.settings import get_settings

# IMPORTANT: import models so they register with Base
from services.inventory_service import models as inventory_models
from services.order_service import models as order_models
from services.payment_service import models as payment_models
from services.subscription_service import models as subscription_models
from services.tracking_service import models as tracking_models

from services.inventory_service.main import inventory_app
from services.order_service.main import order_app
from services.order_service.repository import ChannelRepository
from services.orchestrator.dependencies import get_gateway, get_notifier, get_tracking_client
from services.payment_service.main import payment_app
from services.tracking_service.main import tracking_app

app = FastAPI(title="Fulfillment Cluster")


@app.on_event("startup")
async def startup_event():
    await init_models()
    async with UnitOfWork() as uow:
        await ChannelRepository.ensure_channel(uow.session, get_settings().order_channel)


@app.on_event("shutdown")
async def shutdown_event():
    await get_gateway().aclose()
    await get_tracking_client().aclose()
    await get_notifier().aclose()


app.mount("/orders", order_app)
app.mount("/inventory", inventory_app)
app.mount("/payments", payment_app)
app.mount("/tracking", tracking_app)
