"""Shipping rates offered at checkout for a seller's account."""

from typing import Optional

from . import settings
from .errors import InvalidRequest
from .gateway.port import PaymentGateway
from .logging import get_logger
from .models import ShippingOption

logger = get_logger(__name__)

FREE_SHIPPING_ID = "free_shipping"


def free_shipping_option(currency: str) -> ShippingOption:
    """Synthetic option with no backing rate on the seller's account."""
    return ShippingOption(
        id=FREE_SHIPPING_ID,
        display_name="Free Shipping",
        amount_minor_units=0,
        currency=currency,
        tax_behavior="exclusive",
    )


class ShippingRateService:
    def __init__(
        self,
        gateway: PaymentGateway,
        free_shipping_threshold_minor_units: Optional[int] = None,
        currency: Optional[str] = None,
    ):
        self.gateway = gateway
        if free_shipping_threshold_minor_units is None:
            free_shipping_threshold_minor_units = settings.FREE_SHIPPING_THRESHOLD_MINOR_UNITS
        # 0 disables the free-shipping offer
        self.free_shipping_threshold = free_shipping_threshold_minor_units
        self.currency = currency or settings.DEFAULT_CURRENCY

    def qualifies_for_free_shipping(self, subtotal_minor_units: int) -> bool:
        return bool(self.free_shipping_threshold) and subtotal_minor_units >= self.free_shipping_threshold

    async def rates_for(self, account_id: Optional[str], subtotal_minor_units: int = 0) -> list[ShippingOption]:
        if not account_id:
            raise InvalidRequest("connectedAccountId is required")

        rates = await self.gateway.list_shipping_rates(account_id)

        if self.qualifies_for_free_shipping(subtotal_minor_units):
            rates = [free_shipping_option(self.currency)] + [r for r in rates if r.id != FREE_SHIPPING_ID]

        logger.info(
            "Shipping rates listed",
            account_id=account_id,
            subtotal=subtotal_minor_units,
            count=len(rates),
        )
        return rates
