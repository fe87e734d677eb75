"""Payment gateway port (abstract interface).

The checkout builder, materializer and HTTP layer only talk to this
contract. StripeGateway implements it against the Stripe REST API and
FakeGateway implements it in memory for tests and local development.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from ..models import PaymentSession, Refund, ShippingOption


@dataclass(frozen=True)
class GatewayLineItem:
    name: str
    unit_amount_minor_units: int
    quantity: int
    currency: str
    image_urls: tuple[str, ...] = ()
    description: Optional[str] = None

    @property
    def amount_total_minor_units(self) -> int:
        return self.unit_amount_minor_units * self.quantity


@dataclass(frozen=True)
class TransferInstructions:
    """Funds to move to a seller's connected account once the charge succeeds."""

    destination: str
    amount_minor_units: int


@dataclass(frozen=True)
class GatewaySessionRequest:
    line_items: tuple[GatewayLineItem, ...]
    currency: str
    success_url: str
    cancel_url: str
    total_minor_units: int
    customer_email: Optional[str] = None
    transfer: Optional[TransferInstructions] = None
    metadata: dict[str, str] = field(default_factory=dict)
    shipping_countries: tuple[str, ...] = ()


@dataclass(frozen=True)
class CreatedSession:
    id: str
    url: Optional[str] = None
    client_secret: Optional[str] = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    async def create_session(
        self,
        request: GatewaySessionRequest,
        idempotency_key: Optional[str] = None,
    ) -> CreatedSession:
        """Create a hosted checkout session under the platform account."""
        ...

    @abstractmethod
    async def retrieve_session(self, session_id: str) -> PaymentSession:
        """Fetch a session with its line items and payment intent expanded."""
        ...

    @abstractmethod
    async def list_shipping_rates(self, account_id: str) -> list[ShippingOption]:
        """Active shipping rates configured on a seller's account."""
        ...

    @abstractmethod
    async def create_refund(
        self,
        payment_intent_id: str,
        amount_minor_units: Optional[int],
        reason: str,
    ) -> Refund:
        """Refund a captured payment, fully when no amount is given."""
        ...

    @abstractmethod
    def construct_webhook_event(self, payload: bytes, signature: str) -> dict:
        """Verify a webhook signature and return the decoded event."""
        ...
