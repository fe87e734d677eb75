"""Payment gateway adapters.

Pick one explicitly and hand it to ``create_app``; nothing here is a
process-wide singleton.
"""

from .fake_adapter import FakeGateway
from .port import CreatedSession, GatewayLineItem, GatewaySessionRequest, PaymentGateway, TransferInstructions
from .stripe_adapter import StripeGateway

__all__ = [
    "CreatedSession",
    "FakeGateway",
    "GatewayLineItem",
    "GatewaySessionRequest",
    "PaymentGateway",
    "StripeGateway",
    "TransferInstructions",
]
