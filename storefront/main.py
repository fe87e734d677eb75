from typing import Optional
import uuid

from fastapi import APIRouter, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .checkout import CheckoutSessionBuilder
from .errors import CheckoutError, InvalidRequest, OrderNotFound, PaymentNotComplete
from .gateway.port import PaymentGateway
from .gateway.stripe_adapter import StripeGateway
from .logging import add_context, clear_context, configure_logging, get_logger
from .materializer import OrderMaterializer
from .models import (
    CheckoutRequest,
    CheckoutSessionResponse,
    MaterializeRequest,
    Order,
    OrderCreatedResponse,
    RefundRequest,
    RefundResponse,
    SessionResponse,
    ShippingRatesRequest,
    ShippingRatesResponse,
    StatusUpdateRequest,
)
from .shipping import ShippingRateService
from .status import OrderStatusController
from .store import OrderStore, PostgresOrderStore

logger = get_logger(__name__)

# Events after which a checkout session may carry a confirmed payment
MATERIALIZE_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}

router = APIRouter()


@router.get("/health")
def health():
    return {"ok": True}


@router.post("/checkout/session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    req: CheckoutRequest,
    request: Request,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    state = request.app.state

    # 1) Build (rejects an empty cart before any gateway call)
    session_request = state.builder.build(req)

    # 2) Create under the platform account
    created = await state.gateway.create_session(session_request, idempotency_key=idempotency_key)

    return CheckoutSessionResponse(session_id=created.id, url=created.url, client_secret=created.client_secret)


@router.get("/checkout/session", response_model=SessionResponse)
async def get_checkout_session(request: Request, session_id: Optional[str] = Query(None, alias="sessionId")):
    if not session_id:
        raise InvalidRequest("sessionId is required", details={"field": "sessionId"})
    session = await request.app.state.gateway.retrieve_session(session_id)
    return SessionResponse(session=session)


@router.post("/orders/from-session", response_model=OrderCreatedResponse)
async def create_order_from_session(body: MaterializeRequest, request: Request):
    order = await request.app.state.materializer.materialize(
        body.session_id,
        user_id=body.user_id,
        customer_email=body.customer_email,
    )
    return OrderCreatedResponse(order_id=order.id, order=order)


@router.post("/shipping/rates", response_model=ShippingRatesResponse)
async def shipping_rates(body: ShippingRatesRequest, request: Request):
    rates = await request.app.state.shipping.rates_for(body.connected_account_id, body.subtotal_minor_units())
    return ShippingRatesResponse(rates=rates)


@router.get("/orders", response_model=list[Order])
def list_user_orders(request: Request, user_id: Optional[str] = Query(None, alias="userId")):
    if not user_id:
        raise InvalidRequest("userId is required", details={"field": "userId"})
    return request.app.state.store.list_for_user(user_id)


@router.get("/orders/all", response_model=list[Order])
def list_all_orders(request: Request):
    return request.app.state.store.list_all()


@router.get("/orders/{order_id}", response_model=Order)
def get_order(order_id: str, request: Request):
    order = request.app.state.store.get(order_id)
    if order is None:
        raise OrderNotFound(f"Order {order_id} not found", details={"order_id": order_id})
    return order


@router.patch("/orders/{order_id}/status", response_model=Order)
def update_order_status(order_id: str, body: StatusUpdateRequest, request: Request):
    return request.app.state.status_controller.transition(order_id, body.status)


@router.post("/payments/refund", response_model=RefundResponse)
async def refund_payment(body: RefundRequest, request: Request):
    if not body.payment_intent_id:
        raise InvalidRequest("paymentIntentId is required", details={"field": "paymentIntentId"})
    refund = await request.app.state.gateway.create_refund(body.payment_intent_id, body.amount_minor_units, body.reason)
    logger.info("Refund created", refund_id=refund.id, payment_intent_id=refund.payment_intent_id,
                amount=refund.amount_minor_units)
    return RefundResponse(refund=refund)


@router.post("/webhooks/gateway")
async def gateway_webhook(request: Request, signature: Optional[str] = Header(None, alias="Stripe-Signature")):
    """
    Replay-safe: a redelivered event maps to the same session, and
    materialize() returns the Order created the first time.
    """
    state = request.app.state
    event = state.gateway.construct_webhook_event(await request.body(), signature or "")

    event_type = event.get("type")
    if event_type not in MATERIALIZE_EVENTS:
        return {"received": True}

    session = (event.get("data") or {}).get("object") or {}
    session_id = session.get("id")
    metadata = session.get("metadata") or {}

    try:
        order = await state.materializer.materialize(session_id, user_id=metadata.get("user_id"))
    except PaymentNotComplete:
        # Delayed payment methods: async_payment_succeeded follows
        logger.info("Webhook for unpaid session acknowledged", session_id=session_id, event_type=event_type)
        return {"received": True}

    return {"received": True, "orderId": order.id}


async def handle_checkout_error(request: Request, exc: CheckoutError):
    log = logger.warning if exc.status_code < 500 else logger.error
    log("Request failed", code=exc.code, status=exc.status_code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(
    gateway: Optional[PaymentGateway] = None,
    store: Optional[OrderStore] = None,
    builder: Optional[CheckoutSessionBuilder] = None,
    shipping: Optional[ShippingRateService] = None,
    status_policy: Optional[str] = None,
) -> FastAPI:
    app = FastAPI(title="Storefront Checkout", version="0.1.0")

    gateway = gateway if gateway is not None else StripeGateway()
    store = store if store is not None else PostgresOrderStore()

    app.state.gateway = gateway
    app.state.store = store
    app.state.builder = builder if builder is not None else CheckoutSessionBuilder()
    app.state.shipping = shipping if shipping is not None else ShippingRateService(gateway)
    app.state.materializer = OrderMaterializer(gateway, store)
    app.state.status_controller = OrderStatusController(store, policy=status_policy)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        clear_context()
        add_context(request_id=request.headers.get("X-Request-ID") or uuid.uuid4().hex, path=request.url.path)
        try:
            return await call_next(request)
        finally:
            clear_context()

    app.add_exception_handler(CheckoutError, handle_checkout_error)
    app.include_router(router)
    return app


configure_logging()
app = create_app()
