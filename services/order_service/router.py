from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from services.orchestrator.dependencies import get_lifecycle_manager
from services.orchestrator.lifecycle import OrderLifecycleManager
from shared.config.database import get_db
from shared.security.dependencies import verify_internal_api_key

from .schemas import (
    BulkStatusUpdate,
    BulkUpdateResponse,
    BulkUpdateResultResponse,
    OrderCreate,
    OrderCreatedResponse,
    OrderDetailResponse,
    PaymentIntentResponse,
    StatusChangeResponse,
    StatusUpdate,
)
from .service import OrderService

# Every order route is internal; the storefront BFF calls these with the cluster key
router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "order", "status": "running"}


@router.post("/", response_model=OrderCreatedResponse, status_code=201)
async def create_order(
    payload: OrderCreate, manager: OrderLifecycleManager = Depends(get_lifecycle_manager)
):
    created = await manager.create_order(
        payload.items,
        payload.shipping_address.model_dump() if payload.shipping_address else None,
        payload.payment_method,
        buyer_id=payload.buyer_id,
    )
    intent = created.payment_intent
    return OrderCreatedResponse(
        order_id=created.order_id,
        external_id=created.external_id,
        total=created.total,
        status=created.status,
        payment_intent=PaymentIntentResponse(
            intent_id=intent.intent_id, client_secret=intent.client_secret, status=intent.status
        ),
    )


@router.post("/bulk-status", response_model=BulkUpdateResponse)
async def bulk_update_status(
    payload: BulkStatusUpdate, manager: OrderLifecycleManager = Depends(get_lifecycle_manager)
):
    report = await manager.bulk_update_status(
        payload.order_ids, payload.status, actor=payload.actor, reason=payload.reason
    )
    return BulkUpdateResponse(
        results=[BulkUpdateResultResponse(**vars(result)) for result in report.results],
        succeeded=report.succeeded,
        failed=report.failed,
    )


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order(order_id: int, db: AsyncSession = Depends(get_db)):
    return await OrderService.get_order_details(db, order_id)


@router.patch("/{order_id}/status", response_model=StatusChangeResponse)
async def update_status(
    order_id: int,
    payload: StatusUpdate,
    manager: OrderLifecycleManager = Depends(get_lifecycle_manager),
):
    change = await manager.update_status(order_id, payload.status, actor=payload.actor, reason=payload.reason)
    return StatusChangeResponse(**vars(change))
