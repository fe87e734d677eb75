"""Stripe payment gateway adapter.

Built on the stripe-python SDK's async resource methods. Checkout sessions
are always created with the platform's own secret key; marketplace sellers
are paid through ``payment_intent_data.transfer_data`` so the platform holds
the funds until the transfer.
"""

import math
from typing import Any, Optional

import stripe
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .. import settings
from ..errors import (
    GatewayError,
    GatewayMisconfigured,
    GatewayUnavailable,
    InvalidRequest,
    WebhookSignatureInvalid,
)
from ..logging import get_logger
from ..models import DeliveryEstimate, PaymentSession, Refund, ShippingOption
from .port import CreatedSession, GatewaySessionRequest, PaymentGateway

logger = get_logger(__name__)

# Stripe caps product images per line item
MAX_IMAGES_PER_ITEM = 8
LINE_ITEMS_PAGE_SIZE = 100


def gateway_retry():
    """Retry transient failures of read-only calls; writes are left to the caller."""
    return retry(
        reraise=True,
        stop=stop_after_attempt(settings.GATEWAY_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(GatewayUnavailable),
    )


def to_dict(obj: Any) -> dict:
    if isinstance(obj, stripe.StripeObject):
        return obj.to_dict()
    return dict(obj or {})


def session_payload(request: GatewaySessionRequest) -> dict:
    line_items = []
    for item in request.line_items:
        product_data: dict[str, Any] = {"name": item.name}
        if item.description:
            product_data["description"] = item.description
        if item.image_urls:
            product_data["images"] = list(item.image_urls[:MAX_IMAGES_PER_ITEM])
        line_items.append(
            {
                "quantity": item.quantity,
                "price_data": {
                    "currency": item.currency,
                    "unit_amount": item.unit_amount_minor_units,
                    "product_data": product_data,
                },
            }
        )

    payload: dict[str, Any] = {
        "mode": "payment",
        "success_url": request.success_url,
        "cancel_url": request.cancel_url,
        "line_items": line_items,
        "metadata": dict(request.metadata),
    }
    if request.customer_email:
        payload["customer_email"] = request.customer_email
    if request.shipping_countries:
        payload["shipping_address_collection"] = {"allowed_countries": list(request.shipping_countries)}
    if request.transfer is not None:
        payload["payment_intent_data"] = {
            "transfer_data": {
                "destination": request.transfer.destination,
                "amount": request.transfer.amount_minor_units,
            }
        }
    return payload


def parse_session(body: dict) -> PaymentSession:
    line_items = []
    for li in (body.get("line_items") or {}).get("data", []):
        line_items.append(
            {
                "description": li.get("description") or "",
                "amount_total_minor_units": li.get("amount_total") or 0,
                "quantity": li.get("quantity") or 1,
                "unit_amount_minor_units": (li.get("price") or {}).get("unit_amount"),
            }
        )

    payment_intent = body.get("payment_intent")
    if isinstance(payment_intent, dict):
        payment_intent_id = payment_intent.get("id")
        payment_intent_status = payment_intent.get("status")
    else:
        payment_intent_id = payment_intent
        payment_intent_status = None

    shipping = body.get("shipping_details") or (body.get("collected_information") or {}).get("shipping_details")

    return PaymentSession.model_validate(
        {
            "id": body["id"],
            "status": body.get("status"),
            "payment_status": body.get("payment_status") or "unpaid",
            "amount_total_minor_units": body.get("amount_total") or 0,
            "currency": body.get("currency") or settings.DEFAULT_CURRENCY,
            "reconciled_line_items": line_items,
            "customer_email": (body.get("customer_details") or {}).get("email") or body.get("customer_email"),
            "shipping_details": shipping,
            "payment_intent_id": payment_intent_id,
            "payment_intent_status": payment_intent_status,
            "url": body.get("url"),
            "metadata": body.get("metadata") or {},
        }
    )


def _to_days(bound: Optional[dict]) -> Optional[int]:
    if not bound:
        return None
    value = int(bound.get("value") or 0)
    unit = bound.get("unit")
    if unit == "week":
        return value * 7
    if unit == "month":
        return value * 30
    if unit == "hour":
        return math.ceil(value / 24)
    # day, business_day
    return value


def parse_delivery_estimate(raw: Optional[dict]) -> Optional[DeliveryEstimate]:
    if not raw:
        return None
    bounds = [b for b in (raw.get("minimum"), raw.get("maximum")) if b]
    if not bounds:
        return None
    lo = _to_days(raw.get("minimum"))
    hi = _to_days(raw.get("maximum"))
    lo = lo if lo is not None else hi
    hi = hi if hi is not None else lo
    return DeliveryEstimate(
        min_days=min(lo, hi),
        max_days=max(lo, hi),
        business_days=all(b.get("unit") == "business_day" for b in bounds),
    )


def parse_shipping_rate(body: dict) -> ShippingOption:
    fixed = body.get("fixed_amount") or {}
    return ShippingOption(
        id=body["id"],
        display_name=body.get("display_name") or "Shipping",
        amount_minor_units=fixed.get("amount") or 0,
        currency=fixed.get("currency") or settings.DEFAULT_CURRENCY,
        tax_behavior=body.get("tax_behavior") or "unspecified",
        delivery_estimate=parse_delivery_estimate(body.get("delivery_estimate")),
    )


class StripeGateway(PaymentGateway):
    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        self.timeout = timeout if timeout is not None else settings.GATEWAY_TIMEOUT_SECONDS
        stripe.default_http_client = stripe.HTTPXClient(timeout=self.timeout)

    async def _call(self, operation: str, method, *args, **params):
        if not self.api_key:
            raise GatewayMisconfigured("Payment gateway secret key is not configured")

        try:
            return await method(*args, api_key=self.api_key, **params)
        except (stripe.APIConnectionError, stripe.RateLimitError) as exc:
            logger.warning("Gateway unavailable", operation=operation, error=str(exc))
            raise GatewayUnavailable(
                f"Payment gateway unreachable: {exc.user_message or exc}",
                details={"status": exc.http_status},
            ) from exc
        except (stripe.AuthenticationError, stripe.PermissionError) as exc:
            logger.error("Gateway rejected credentials", operation=operation, status=exc.http_status)
            raise GatewayMisconfigured(
                "Payment gateway rejected the configured credentials",
                details={"status": exc.http_status},
            ) from exc
        except stripe.StripeError as exc:
            if exc.http_status is None or exc.http_status >= 500:
                logger.warning("Gateway unavailable", operation=operation, status=exc.http_status)
                raise GatewayUnavailable(
                    f"Payment gateway returned {exc.http_status}",
                    details={"status": exc.http_status},
                ) from exc
            logger.warning("Gateway rejected request", operation=operation, status=exc.http_status, code=exc.code)
            raise GatewayError(
                exc.user_message or f"Payment gateway returned {exc.http_status}",
                details={"status": exc.http_status, "code": exc.code, "param": getattr(exc, "param", None)},
            ) from exc

    async def create_session(self, request, idempotency_key=None):
        params = session_payload(request)
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        session = to_dict(await self._call("create_session", stripe.checkout.Session.create_async, **params))
        logger.info("Checkout session created", session_id=session["id"], total=request.total_minor_units)
        return CreatedSession(
            id=session["id"],
            url=session.get("url"),
            client_secret=session.get("client_secret"),
        )

    @gateway_retry()
    async def retrieve_session(self, session_id):
        body = to_dict(
            await self._call(
                "retrieve_session",
                stripe.checkout.Session.retrieve_async,
                session_id,
                expand=["line_items", "payment_intent"],
            )
        )

        # The expanded list is only the first page
        line_items = body.get("line_items") or {}
        data = list(line_items.get("data") or [])
        has_more = bool(line_items.get("has_more"))
        while has_more:
            params: dict[str, Any] = {"limit": LINE_ITEMS_PAGE_SIZE}
            if data:
                params["starting_after"] = data[-1]["id"]
            page = to_dict(
                await self._call(
                    "list_line_items",
                    stripe.checkout.Session.list_line_items_async,
                    session_id,
                    **params,
                )
            )
            batch = page.get("data") or []
            if not batch:
                break
            data.extend(batch)
            has_more = bool(page.get("has_more"))

        body["line_items"] = {"data": data}
        return parse_session(body)

    @gateway_retry()
    async def list_shipping_rates(self, account_id):
        rates = to_dict(
            await self._call(
                "list_shipping_rates",
                stripe.ShippingRate.list_async,
                active=True,
                limit=100,
                stripe_account=account_id,
            )
        )
        return [parse_shipping_rate(rate) for rate in rates.get("data", [])]

    async def create_refund(self, payment_intent_id, amount_minor_units, reason):
        params: dict[str, Any] = {"payment_intent": payment_intent_id, "reason": reason}
        if amount_minor_units is not None:
            params["amount"] = amount_minor_units
        refund = to_dict(await self._call("create_refund", stripe.Refund.create_async, **params))
        return Refund(
            id=refund["id"],
            status=refund.get("status") or "pending",
            amount_minor_units=refund.get("amount") or 0,
            currency=refund.get("currency") or settings.DEFAULT_CURRENCY,
            payment_intent_id=refund.get("payment_intent") or payment_intent_id,
        )

    def construct_webhook_event(self, payload, signature):
        if not self.webhook_secret:
            raise GatewayMisconfigured("Webhook signing secret is not configured")
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                self.webhook_secret,
                tolerance=settings.WEBHOOK_TOLERANCE_SECONDS,
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("Webhook signature invalid", error=str(exc))
            raise WebhookSignatureInvalid("Webhook signature verification failed") from exc
        except ValueError as exc:
            raise InvalidRequest("Webhook payload is not valid JSON") from exc
        return to_dict(event)
