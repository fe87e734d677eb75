"""In-memory payment gateway for development and testing.

Sessions live in a dict. ``complete_session`` simulates the customer paying
on the hosted page, and ``configure`` makes calls fail the way a real
gateway can (outage or rejection).
"""

import asyncio
import json
from typing import Optional
from uuid import uuid4

from ..errors import CheckoutError, GatewayError, InvalidRequest, WebhookSignatureInvalid
from ..models import PaymentSession, ReconciledLineItem, Refund, ShippingOption
from .port import CreatedSession, GatewaySessionRequest, PaymentGateway

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    def __init__(self, lookup_delay: float = 0.0) -> None:
        self.sessions: dict[str, PaymentSession] = {}
        self.requests: dict[str, GatewaySessionRequest] = {}
        self.shipping_rates: dict[str, list[ShippingOption]] = {}
        self.calls: list[dict] = []
        self.lookup_delay = lookup_delay
        self.failure: Optional[CheckoutError] = None

    def configure(self, failure: Optional[CheckoutError] = None, lookup_delay: Optional[float] = None) -> None:
        """Make subsequent calls raise ``failure`` (None restores normal behaviour)."""
        self.failure = failure
        if lookup_delay is not None:
            self.lookup_delay = lookup_delay

    def _record(self, method: str, **kwargs) -> None:
        self.calls.append({"method": method, **kwargs})
        if self.failure is not None:
            raise self.failure

    def calls_to(self, method: str) -> list[dict]:
        return [c for c in self.calls if c["method"] == method]

    def add_session(self, session: PaymentSession) -> PaymentSession:
        self.sessions[session.id] = session
        return session

    def complete_session(
        self,
        session_id: str,
        payment_status: str = "paid",
        customer_email: Optional[str] = None,
        shipping_details: Optional[dict] = None,
    ) -> PaymentSession:
        """Simulate the customer finishing payment on the hosted checkout page."""
        session = self.sessions[session_id]
        updates = {
            "status": "complete",
            "payment_status": payment_status,
            "payment_intent_id": session.payment_intent_id or f"pi_fake_{uuid4().hex[:12]}",
            "payment_intent_status": "succeeded" if payment_status == "paid" else "requires_payment_method",
        }
        if customer_email is not None:
            updates["customer_email"] = customer_email
        if shipping_details is not None:
            updates["shipping_details"] = shipping_details
        completed = session.model_copy(update=updates)
        self.sessions[session_id] = completed
        return completed

    async def create_session(self, request: GatewaySessionRequest, idempotency_key: Optional[str] = None):
        self._record("create_session", request=request, idempotency_key=idempotency_key)

        session_id = f"cs_test_{uuid4().hex[:16]}"
        self.requests[session_id] = request
        self.sessions[session_id] = PaymentSession(
            id=session_id,
            status="open",
            payment_status="unpaid",
            amount_total_minor_units=request.total_minor_units,
            currency=request.currency,
            reconciled_line_items=[
                ReconciledLineItem(
                    description=item.name,
                    amount_total_minor_units=item.amount_total_minor_units,
                    quantity=item.quantity,
                    unit_amount_minor_units=item.unit_amount_minor_units,
                )
                for item in request.line_items
            ],
            customer_email=request.customer_email,
            url=f"https://checkout.fake/pay/{session_id}",
            metadata=dict(request.metadata),
        )
        return CreatedSession(
            id=session_id,
            url=f"https://checkout.fake/pay/{session_id}",
            client_secret=f"{session_id}_secret_{uuid4().hex[:8]}",
        )

    async def retrieve_session(self, session_id: str) -> PaymentSession:
        self._record("retrieve_session", session_id=session_id)
        await asyncio.sleep(self.lookup_delay)
        session = self.sessions.get(session_id)
        if session is None:
            raise GatewayError(f"No such checkout.session: '{session_id}'", details={"status": 404})
        return session

    async def list_shipping_rates(self, account_id: str) -> list[ShippingOption]:
        self._record("list_shipping_rates", account_id=account_id)
        return list(self.shipping_rates.get(account_id, []))

    async def create_refund(self, payment_intent_id: str, amount_minor_units: Optional[int], reason: str) -> Refund:
        self._record("create_refund", payment_intent_id=payment_intent_id, amount=amount_minor_units, reason=reason)
        session = next((s for s in self.sessions.values() if s.payment_intent_id == payment_intent_id), None)
        if session is None:
            raise GatewayError(f"No such payment_intent: '{payment_intent_id}'", details={"status": 404})
        return Refund(
            id=f"re_fake_{uuid4().hex[:12]}",
            status="succeeded",
            amount_minor_units=amount_minor_units if amount_minor_units is not None else session.amount_total_minor_units,
            currency=session.currency,
            payment_intent_id=payment_intent_id,
        )

    def construct_webhook_event(self, payload: bytes, signature: str) -> dict:
        if signature != TEST_SIGNATURE:
            raise WebhookSignatureInvalid("Signature mismatch")
        try:
            return json.loads(payload)
        except ValueError as exc:
            raise InvalidRequest("Webhook payload is not valid JSON") from exc
