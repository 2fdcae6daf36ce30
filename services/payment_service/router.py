"""
Payment endpoints.

Confirmation and status lookups are internal (X-Internal-API-Key). The
processor webhook is public: it is authenticated by its HMAC signature
instead and rate-limited per client IP.
"""
import json

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request

from services.orchestrator.dependencies import get_gateway, get_lifecycle_manager
from services.orchestrator.lifecycle import OrderLifecycleManager
from shared.security import limiter
from shared.security.dependencies import verify_internal_api_key

from .gateway import PaymentGateway
from .schemas import PaymentConfirm, PaymentStatusResponse, WebhookAck
from .service import PaymentWebhookService

logger = structlog.get_logger(__name__)

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()


def get_webhook_service(manager: OrderLifecycleManager = Depends(get_lifecycle_manager)) -> PaymentWebhookService:
    return PaymentWebhookService(manager)


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "payment", "status": "running"}


@public_router.post("/webhooks/processor", response_model=WebhookAck)
@limiter.limit("60/minute")
async def processor_webhook(
    request: Request,  # slowapi keys the limit on the client address
    signature: str | None = Header(default=None),
    request_timestamp: str | None = Header(default=None),
    gateway: PaymentGateway = Depends(get_gateway),
    service: PaymentWebhookService = Depends(get_webhook_service),
):
    body = await request.body()
    if not gateway.verify_webhook_signature(signature, body, request_timestamp):
        logger.warning("payment_webhook_signature_rejected", client=request.client.host if request.client else None)
        raise HTTPException(status_code=400, detail="Invalid signature")
    try:
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Malformed webhook payload")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="Malformed webhook payload")

    result = await service.handle_event(event.get("type"), event.get("data") or {})
    return WebhookAck(**result)


@router.post("/{intent_id}/confirm", response_model=PaymentStatusResponse)
async def confirm_payment(
    intent_id: str, payload: PaymentConfirm, gateway: PaymentGateway = Depends(get_gateway)
):
    result = await gateway.confirm_payment(intent_id, payload.payment_method_ref)
    return PaymentStatusResponse(**vars(result))


@router.get("/{intent_id}", response_model=PaymentStatusResponse)
async def get_payment_status(intent_id: str, gateway: PaymentGateway = Depends(get_gateway)):
    result = await gateway.get_payment_status(intent_id)
    return PaymentStatusResponse(**vars(result))
