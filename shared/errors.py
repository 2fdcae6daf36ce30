"""Error taxonomy shared by every fulfillment component.

Each error carries a machine-readable ``code`` and the HTTP status the
service surface answers with, so callers can tell a stock shortage from a
payment failure or a rejected transition without parsing messages.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class FulfillmentError(Exception):
    code = "fulfillment_error"
    http_status = 500

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message, **self.extra}


class ValidationError(FulfillmentError):
    code = "validation_error"
    http_status = 422


class InsufficientInventoryError(FulfillmentError):
    code = "insufficient_inventory"
    http_status = 409

    def __init__(self, variant_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient inventory for variant {variant_id}: requested {requested}, available {available}",
            variant_id=variant_id,
            requested=requested,
            available=available,
        )
        self.variant_id = variant_id
        self.requested = requested
        self.available = available


class PaymentGatewayError(FulfillmentError):
    code = "payment_gateway_error"
    http_status = 502

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, upstream_status=status_code)
        self.status_code = status_code


class InvalidStateTransitionError(FulfillmentError):
    code = "invalid_state_transition"
    http_status = 409

    def __init__(self, order_id: int, from_status: str, to_status: str):
        super().__init__(
            f"Order {order_id} cannot move from {from_status} to {to_status}",
            order_id=order_id,
            from_status=from_status,
            to_status=to_status,
        )
        self.from_status = from_status
        self.to_status = to_status


class CarrierUnavailableError(FulfillmentError):
    code = "carrier_unavailable"
    http_status = 503

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, upstream_status=status_code)
        self.status_code = status_code


class OrderNotFoundError(FulfillmentError):
    code = "order_not_found"
    http_status = 404

    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found", order_id=order_id)
        self.order_id = order_id


async def fulfillment_error_handler(request: Request, exc: FulfillmentError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def install_error_handlers(app: FastAPI):
    app.add_exception_handler(FulfillmentError, fulfillment_error_handler)
