"""Completed payment session -> exactly one persisted Order.

materialize() is safe to call any number of times for the same session,
concurrently or not. The duplicate check up front answers the common retry
cheaply; the store's conditional insert settles true races, and the losing
writer returns the winner's Order.
"""

from typing import Optional

from .classifier import classify_line_items
from .errors import ConflictDuplicateOrder, InvalidRequest, PaymentNotComplete, ReconciliationMismatch
from .gateway.port import PaymentGateway
from .logging import get_logger
from .models import Order, PaymentSession
from .store import OrderStore

logger = get_logger(__name__)


class OrderMaterializer:
    def __init__(self, gateway: PaymentGateway, store: OrderStore):
        self.gateway = gateway
        self.store = store

    async def materialize(
        self,
        session_id: Optional[str],
        user_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> Order:
        if not session_id or not session_id.strip():
            raise InvalidRequest("sessionId is required", details={"field": "sessionId"})
        session_id = session_id.strip()

        # 1) Duplicate check, before any remote call
        existing = self.store.find_by_session(session_id)
        if existing is not None:
            logger.info("Order already exists for session", session_id=session_id, order_id=existing.id)
            return existing

        # 2) Session lookup; GatewayUnavailable propagates and nothing is written
        session = await self.gateway.retrieve_session(session_id)

        # 3) Payment must be confirmed
        if not session.is_paid:
            logger.info(
                "Payment not complete",
                session_id=session_id,
                status=session.status,
                payment_status=session.payment_status,
                payment_intent_status=session.payment_intent_status,
            )
            raise PaymentNotComplete(
                session_id,
                status=session.status,
                payment_status=session.payment_status,
                payment_intent_status=session.payment_intent_status,
            )

        # 4) Classify and build
        order = self.build_order(session, user_id=user_id, customer_email=customer_email)

        # 5) Conditional insert
        try:
            created = self.store.insert_unique(order)
        except ConflictDuplicateOrder:
            winner = self.store.find_by_session(session_id)
            if winner is None:
                raise
            logger.info("Concurrent materialize resolved to existing order", session_id=session_id,
                        order_id=winner.id)
            return winner

        logger.info(
            "Order created",
            session_id=session_id,
            order_id=created.id,
            total=created.total_minor_units,
            shipping=created.shipping_cost_minor_units,
            currency=created.currency,
        )
        return created

    def build_order(
        self,
        session: PaymentSession,
        user_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> Order:
        classified = classify_line_items(session.reconciled_line_items)
        total = session.amount_total_minor_units
        subtotal = total - classified.shipping_cost_minor_units

        if subtotal < 0:
            raise ReconciliationMismatch(
                f"Shipping {classified.shipping_cost_minor_units} exceeds session total {total}",
                details={"session_id": session.id},
            )
        if classified.products_total_minor_units != subtotal:
            # Discounts or gateway-side adjustments; the session total stays authoritative
            logger.warning(
                "Product lines do not sum to subtotal",
                session_id=session.id,
                products_total=classified.products_total_minor_units,
                subtotal=subtotal,
            )

        return Order(
            session_id=session.id,
            payment_intent_id=session.payment_intent_id,
            user_id=user_id,
            customer_email=customer_email or session.customer_email or "",
            products=classified.products,
            subtotal_minor_units=subtotal,
            shipping_cost_minor_units=classified.shipping_cost_minor_units,
            shipping_name=classified.shipping_name,
            total_minor_units=total,
            currency=session.currency,
            status="paid",
            shipping_address=session.shipping_details,
        )
