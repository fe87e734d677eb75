from typing import Optional

from . import settings
from .classifier import is_shipping_line, shipping_line_name
from .errors import InvalidRequest
from .fees import calculate_fee_split
from .gateway.port import GatewayLineItem, GatewaySessionRequest, TransferInstructions
from .logging import get_logger
from .models import CheckoutRequest

logger = get_logger(__name__)

PLATFORM_METADATA_KEYS = frozenset({"source", "item_count", "shipping_option_id", "connected_account_id", "platform_fee"})


class CheckoutSessionBuilder:
    """
    Turns a cart snapshot into a gateway session request.

    Shipping travels as one more line item so the gateway computes the full
    total itself; the classifier splits it back out once payment completes.
    With a seller account on the request the seller's share of that full
    total is attached as a transfer, and the session stays on the platform
    account.
    """

    def __init__(
        self,
        currency: Optional[str] = None,
        fee_fraction: Optional[float] = None,
        shipping_countries: Optional[list[str]] = None,
        default_connected_account_id: Optional[str] = None,
    ):
        self.currency = (currency or settings.DEFAULT_CURRENCY).lower()
        self.fee_fraction = settings.PLATFORM_FEE_FRACTION if fee_fraction is None else fee_fraction
        self.shipping_countries = tuple(
            settings.SHIPPING_COUNTRIES if shipping_countries is None else shipping_countries
        )
        self.default_connected_account_id = default_connected_account_id or settings.DEFAULT_CONNECTED_ACCOUNT_ID

    def build(self, request: CheckoutRequest) -> GatewaySessionRequest:
        if not request.items:
            raise InvalidRequest("Cart is empty", details={"field": "items"})

        line_items = []
        for item in request.items:
            if is_shipping_line(item.name):
                logger.warning(
                    "Product name will be read back as shipping",
                    product_id=item.product_id,
                    name=item.name,
                )
            line_items.append(
                GatewayLineItem(
                    name=item.name,
                    unit_amount_minor_units=item.unit_price_minor_units,
                    quantity=item.quantity,
                    currency=self.currency,
                    image_urls=tuple(item.image_urls),
                    description=item.description,
                )
            )

        shipping = request.shipping_option
        if shipping is not None and shipping.amount_minor_units > 0:
            if shipping.currency.lower() != self.currency:
                raise InvalidRequest(
                    f"Shipping currency {shipping.currency} does not match checkout currency {self.currency}",
                    details={"field": "shippingOption.currency"},
                )
            line_items.append(
                GatewayLineItem(
                    name=shipping_line_name(shipping.display_name),
                    unit_amount_minor_units=shipping.amount_minor_units,
                    quantity=1,
                    currency=self.currency,
                    description=shipping.delivery_label,
                )
            )

        total = sum(li.amount_total_minor_units for li in line_items)

        # Platform-owned keys are never taken from the caller
        metadata = {k: v for k, v in request.metadata.items() if k not in PLATFORM_METADATA_KEYS}
        metadata["source"] = "storefront"
        metadata["item_count"] = str(sum(i.quantity for i in request.items))
        if shipping is not None:
            metadata["shipping_option_id"] = shipping.id

        transfer = None
        account_id = request.connected_account_id or self.default_connected_account_id
        if account_id:
            split = calculate_fee_split(total, self.fee_fraction)
            transfer = TransferInstructions(destination=account_id, amount_minor_units=split.transfer_to_seller_minor_units)
            metadata["connected_account_id"] = account_id
            metadata["platform_fee"] = str(split.platform_retained_minor_units)

        logger.info(
            "Checkout session request built",
            total=total,
            line_items=len(line_items),
            connected_account_id=account_id,
            transfer=transfer.amount_minor_units if transfer else None,
        )

        return GatewaySessionRequest(
            line_items=tuple(line_items),
            currency=self.currency,
            success_url=request.success_url,
            cancel_url=request.cancel_url,
            total_minor_units=total,
            customer_email=request.customer_email,
            transfer=transfer,
            metadata=metadata,
            shipping_countries=self.shipping_countries,
        )
