from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shared.config.database import UnitOfWork, get_db, get_session_factory
from shared.security.dependencies import verify_internal_api_key

from .schemas import AuditEntryResponse, AvailabilityResponse, StockAdjustment, VariantCreate, VariantResponse
from .service import InventoryReservation, InventoryService

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "inventory", "status": "running"}


@router.post("/variants", response_model=VariantResponse, status_code=201)
async def create_variant(variant: VariantCreate, db: AsyncSession = Depends(get_db)):
    return await InventoryService.create_variant(db, variant)


@router.get("/variants/{variant_id}", response_model=VariantResponse)
async def get_variant(variant_id: int, db: AsyncSession = Depends(get_db)):
    variant = await InventoryService.get_variant(db, variant_id)
    if not variant:
        raise HTTPException(status_code=404, detail="Variant not found")
    return variant


@router.get("/variants/{variant_id}/availability", response_model=AvailabilityResponse)
async def get_availability(variant_id: int, db: AsyncSession = Depends(get_db)):
    variant = await InventoryService.get_variant(db, variant_id)
    if not variant:
        raise HTTPException(status_code=404, detail="Variant not found")
    return AvailabilityResponse(variant_id=variant.id, available=variant.inventory_quantity)


@router.patch("/variants/{variant_id}/stock", response_model=AvailabilityResponse)
async def adjust_stock(
    variant_id: int,
    payload: StockAdjustment,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    async with UnitOfWork(session_factory) as uow:
        available = await InventoryReservation.adjust(uow, variant_id, payload.delta, payload.reason)
    return AvailabilityResponse(variant_id=variant_id, available=available)


@router.get("/variants/{variant_id}/audit", response_model=list[AuditEntryResponse])
async def get_audit_log(variant_id: int, limit: int = 100, db: AsyncSession = Depends(get_db)):
    return await InventoryService.list_audit(db, variant_id, limit=limit)
