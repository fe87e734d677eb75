from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Optional, get_args
import uuid

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel

from .money import to_minor_units

OrderStatus = Literal["pending", "paid", "processing", "shipped", "delivered", "cancelled"]
ORDER_STATUSES: tuple[str, ...] = get_args(OrderStatus)

SessionStatus = Literal["open", "complete", "expired"]
SessionPaymentStatus = Literal["unpaid", "paid", "no_payment_required"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CartLineItem(ApiModel):
    product_id: str
    name: str = Field(min_length=1)
    unit_price_minor_units: int = Field(ge=0)
    quantity: int = Field(default=1, ge=1)
    image_urls: list[str] = Field(default_factory=list)
    description: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _from_storefront_cart(cls, data: Any) -> Any:
        # Storefront carts send {id, price (major units), imageUrl}
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "productId" not in data and "product_id" not in data and "id" in data:
            data["productId"] = str(data.pop("id"))
        if "unitPriceMinorUnits" not in data and "unit_price_minor_units" not in data and "price" in data:
            try:
                data["unitPriceMinorUnits"] = to_minor_units(data.pop("price"))
            except ValueError as exc:
                raise ValueError(f"invalid price: {exc}") from exc
        if "imageUrls" not in data and "image_urls" not in data and data.get("imageUrl"):
            data["imageUrls"] = [data.pop("imageUrl")]
        return data

    @property
    def line_total_minor_units(self) -> int:
        return self.unit_price_minor_units * self.quantity


class DeliveryEstimate(ApiModel):
    min_days: int = Field(ge=0)
    max_days: int = Field(ge=0)
    # False once any bound was given in calendar units (day, week, hour...)
    business_days: bool = True

    @model_validator(mode="after")
    def _ordered(self):
        if self.max_days < self.min_days:
            raise ValueError("max_days must be >= min_days")
        return self


class ShippingOption(ApiModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    display_name: str
    amount_minor_units: int = Field(ge=0)
    currency: str
    tax_behavior: str = "unspecified"
    delivery_estimate: Optional[DeliveryEstimate] = None

    @computed_field
    @property
    def delivery_label(self) -> str:
        if self.delivery_estimate is None:
            return "Standard delivery"
        estimate = self.delivery_estimate
        unit = "business day" if estimate.business_days else "day"
        lo, hi = estimate.min_days, estimate.max_days
        if lo == hi:
            return f"{lo} {unit}" if lo == 1 else f"{lo} {unit}s"
        return f"{lo}-{hi} {unit}s"


class CheckoutRequest(ApiModel):
    # Emptiness is checked by the session builder so it surfaces as invalid_request
    items: list[CartLineItem] = Field(default_factory=list)
    connected_account_id: Optional[str] = None
    shipping_option: Optional[ShippingOption] = None
    customer_email: Optional[str] = None
    success_url: str
    cancel_url: str
    metadata: dict[str, str] = Field(default_factory=dict)


class ReconciledLineItem(ApiModel):
    description: str = ""
    amount_total_minor_units: int = Field(ge=0)
    quantity: int = Field(default=1, ge=0)
    unit_amount_minor_units: Optional[int] = None


class PaymentSession(ApiModel):
    id: str
    status: Optional[SessionStatus] = None
    payment_status: SessionPaymentStatus
    amount_total_minor_units: int = Field(ge=0)
    currency: str
    reconciled_line_items: list[ReconciledLineItem] = Field(default_factory=list)
    customer_email: Optional[str] = None
    shipping_details: Optional[dict[str, Any]] = None
    payment_intent_id: Optional[str] = None
    payment_intent_status: Optional[str] = None
    url: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid" or self.payment_intent_status == "succeeded"


class ProductLine(ApiModel):
    name: str
    unit_price_minor_units: int = Field(ge=0)
    quantity: int = Field(ge=0)
    description: str = ""
    line_total_minor_units: int = Field(ge=0)


class Order(ApiModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    payment_intent_id: Optional[str] = None
    user_id: Optional[str] = None
    customer_email: str = ""
    products: list[ProductLine] = Field(default_factory=list)
    subtotal_minor_units: int = Field(ge=0)
    shipping_cost_minor_units: int = Field(ge=0)
    shipping_name: str
    total_minor_units: int = Field(ge=0)
    currency: str
    status: OrderStatus = "paid"
    shipping_address: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _balanced(self):
        if self.subtotal_minor_units + self.shipping_cost_minor_units != self.total_minor_units:
            raise ValueError(
                f"unbalanced order: subtotal {self.subtotal_minor_units} + shipping "
                f"{self.shipping_cost_minor_units} != total {self.total_minor_units}"
            )
        return self


class Refund(ApiModel):
    id: str
    status: str
    amount_minor_units: int
    currency: str
    payment_intent_id: str


# Request / response bodies

class CheckoutSessionResponse(ApiModel):
    session_id: str
    url: Optional[str] = None
    client_secret: Optional[str] = None


class SessionResponse(ApiModel):
    session: PaymentSession


class MaterializeRequest(ApiModel):
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    customer_email: Optional[str] = None


class OrderCreatedResponse(ApiModel):
    order_id: str
    order: Order


class ShippingRatesRequest(ApiModel):
    connected_account_id: Optional[str] = None
    order_total: Optional[Decimal] = Field(default=None, ge=0)
    order_total_minor_units: Optional[int] = Field(default=None, ge=0)

    def subtotal_minor_units(self) -> int:
        if self.order_total_minor_units is not None:
            return self.order_total_minor_units
        if self.order_total is not None:
            return to_minor_units(self.order_total)
        return 0


class ShippingRatesResponse(ApiModel):
    rates: list[ShippingOption]


class StatusUpdateRequest(ApiModel):
    status: str


class RefundRequest(ApiModel):
    payment_intent_id: Optional[str] = None
    amount_minor_units: Optional[int] = Field(default=None, gt=0)
    reason: str = "requested_by_customer"


class RefundResponse(ApiModel):
    refund: Refund
