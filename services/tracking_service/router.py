from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from services.orchestrator.dependencies import get_lifecycle_manager, get_tracking_client
from services.orchestrator.lifecycle import OrderLifecycleManager
from shared.config.database import get_db
from shared.security.dependencies import verify_internal_api_key

from .client import CarrierTrackingPort
from .schemas import OrderTrackingResponse, TrackingInfo, TrackingNumberAssign
from .service import TrackingService

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "tracking", "status": "running"}


@router.get("/orders/{order_id}", response_model=OrderTrackingResponse)
async def get_order_tracking(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    client: CarrierTrackingPort = Depends(get_tracking_client),
):
    return await TrackingService.get_order_tracking(db, order_id, client)


@router.put("/orders/{order_id}/tracking-number")
async def set_tracking_number(
    order_id: int,
    payload: TrackingNumberAssign,
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
):
    tracking_number = await manager.set_tracking_number(order_id, payload.tracking_number, payload.carrier)
    return {"order_id": order_id, "tracking_number": tracking_number, "carrier": payload.carrier}


@router.get("/{tracking_number}", response_model=TrackingInfo)
async def get_tracking_info(tracking_number: str, client: CarrierTrackingPort = Depends(get_tracking_client)):
    return await client.get_tracking_info_with_cache(tracking_number)
