"""Error taxonomy for checkout and order reconciliation.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with. ``ConflictDuplicateOrder`` is internal: the materializer
resolves it and it never reaches a client.
"""

from typing import Any, Optional


class CheckoutError(Exception):
    code = "checkout_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class InvalidRequest(CheckoutError):
    code = "invalid_request"
    status_code = 400


class PaymentNotComplete(CheckoutError):
    """Session exists but payment is not confirmed yet. Retry later, not immediately."""

    code = "payment_not_complete"
    status_code = 400

    def __init__(self, session_id: str, status: Optional[str], payment_status: Optional[str],
                 payment_intent_status: Optional[str] = None):
        super().__init__(
            f"Payment for session {session_id} is not complete (payment_status={payment_status})",
            details={
                "session_id": session_id,
                "status": status,
                "payment_status": payment_status,
                "payment_intent_status": payment_intent_status,
            },
        )
        self.session_id = session_id
        self.status = status
        self.payment_status = payment_status


class GatewayUnavailable(CheckoutError):
    """Transient gateway failure (timeout, transport error, 5xx). Safe to retry."""

    code = "gateway_unavailable"
    status_code = 503


class GatewayError(CheckoutError):
    """The gateway answered but rejected the request."""

    code = "gateway_error"
    status_code = 502


class GatewayMisconfigured(CheckoutError):
    code = "gateway_misconfigured"
    status_code = 500


class ConflictDuplicateOrder(CheckoutError):
    code = "duplicate_order"
    status_code = 409

    def __init__(self, session_id: str):
        super().__init__(f"An order already exists for session {session_id}", {"session_id": session_id})
        self.session_id = session_id


class InvalidStatus(CheckoutError):
    code = "invalid_status"
    status_code = 400


class IllegalTransition(CheckoutError):
    code = "illegal_transition"
    status_code = 409


class OrderNotFound(CheckoutError):
    code = "order_not_found"
    status_code = 404


class ReconciliationMismatch(CheckoutError):
    """Gateway amounts cannot be split into a balanced order."""

    code = "reconciliation_mismatch"
    status_code = 502


class WebhookSignatureInvalid(CheckoutError):
    code = "invalid_signature"
    status_code = 400
