"""Payment processor adapter.

Wraps the processor's REST API behind a small async interface. Every call
carries an explicit timeout and any failure, whether a transport error or a
non-2xx answer, surfaces as PaymentGatewayError with the upstream status
code. Callers must assume nothing happened on the processor side when a
call raises.
"""
import hashlib
import hmac
import secrets
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

import httpx
import structlog

from shared.errors import PaymentGatewayError
from shared.observability import ecomm_payment_gateway_errors_total

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentIntent:
    intent_id: str
    client_secret: str | None
    status: str


@dataclass(frozen=True)
class PaymentStatusResult:
    payment_id: str
    status: str
    amount: Decimal | None = None
    currency: str | None = None


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    status: str
    amount: Decimal


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int | None) -> Decimal | None:
    if amount is None:
        return None
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class PaymentGateway:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        webhook_secret: str,
        timeout: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._timeout = timeout
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def aclose(self):
        await self._client.aclose()

    def _malformed(self, operation: str, response: httpx.Response, reason: str) -> PaymentGatewayError:
        ecomm_payment_gateway_errors_total.labels(operation=operation).inc()
        logger.error(
            "payment_gateway_malformed_response",
            operation=operation,
            status_code=response.status_code,
            reason=reason,
            body=response.text[:500],
        )
        return PaymentGatewayError(
            f"Failed to {operation.replace('_', ' ')}: {reason}", status_code=response.status_code
        )

    async def _request(
        self, method: str, path: str, operation: str, required: tuple[str, ...] = ("status",), **kwargs
    ) -> dict:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._client.request(method, path, headers=headers, timeout=self._timeout, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            ecomm_payment_gateway_errors_total.labels(operation=operation).inc()
            logger.error(
                "payment_gateway_rejected",
                operation=operation,
                status_code=exc.response.status_code,
                body=exc.response.text[:500],
            )
            raise PaymentGatewayError(
                f"Failed to {operation.replace('_', ' ')}", status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            ecomm_payment_gateway_errors_total.labels(operation=operation).inc()
            logger.error("payment_gateway_unreachable", operation=operation, error=str(exc))
            raise PaymentGatewayError(f"Failed to {operation.replace('_', ' ')}: {exc}") from exc
        try:
            data = response.json()
        except ValueError as exc:
            raise self._malformed(operation, response, "response is not JSON") from exc
        if not isinstance(data, dict):
            raise self._malformed(operation, response, "response is not an object")
        missing = [field for field in required if data.get(field) is None]
        if missing:
            raise self._malformed(operation, response, f"response lacks {', '.join(missing)}")
        return data

    async def create_payment_intent(self, amount: Decimal, currency: str = "GBP", description: str = "") -> PaymentIntent:
        data = await self._request(
            "POST",
            "/payment-intents",
            "create_payment_intent",
            required=("id", "status"),
            json={
                "amount": to_minor_units(amount),
                "currency": currency,
                "description": description,
                "capture_mode": "automatic",
            },
        )
        return PaymentIntent(intent_id=data["id"], client_secret=data.get("client_secret"), status=data["status"])

    async def confirm_payment(self, intent_id: str, payment_method_ref: str) -> PaymentStatusResult:
        data = await self._request(
            "POST",
            f"/payment-intents/{intent_id}/confirm",
            "confirm_payment",
            json={"payment_method": payment_method_ref},
        )
        return PaymentStatusResult(payment_id=data.get("id", intent_id), status=data["status"])

    async def get_payment_status(self, intent_id: str) -> PaymentStatusResult:
        data = await self._request("GET", f"/payment-intents/{intent_id}", "get_payment_status")
        return PaymentStatusResult(
            payment_id=data.get("id", intent_id),
            status=data["status"],
            amount=from_minor_units(data.get("amount")),
            currency=data.get("currency"),
        )

    async def cancel_payment_intent(self, intent_id: str) -> PaymentStatusResult:
        data = await self._request("POST", f"/payment-intents/{intent_id}/cancel", "cancel_payment_intent")
        return PaymentStatusResult(payment_id=data.get("id", intent_id), status=data["status"])

    async def refund(self, payment_ref: str, amount: Decimal, reason: str = "requested_by_customer") -> RefundResult:
        data = await self._request(
            "POST",
            "/refunds",
            "refund",
            required=("id", "status"),
            json={"payment": payment_ref, "amount": to_minor_units(amount), "reason": reason},
        )
        return RefundResult(refund_id=data["id"], status=data["status"], amount=from_minor_units(data.get("amount")))

    def sign_payload(self, payload: str | bytes, timestamp: str) -> str:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        message = timestamp.encode("utf-8") + b"." + payload
        return hmac.new(self._webhook_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()

    def verify_webhook_signature(self, signature: str | None, payload: str | bytes, timestamp: str | None) -> bool:
        """Authenticate a webhook body using constant-time comparison."""
        if not signature or not timestamp or not self._webhook_secret:
            return False
        expected = self.sign_payload(payload, timestamp)
        return secrets.compare_digest(signature.strip().lower().encode("utf-8"), expected.encode("utf-8"))
