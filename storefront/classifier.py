"""Separate a completed session's line items back into products and shipping.

Shipping is sent to the gateway as an ordinary line item, so after payment
it can only be recognised by its description. A product whose name contains
one of the trigger words ("Delivery Box Organizer") is classified as shipping;
there is no item-type tag on the gateway side to do better.
"""

from dataclasses import dataclass, field

from .models import ProductLine, ReconciledLineItem

SHIPPING_KEYWORDS = ("shipping", "delivery", "handling")
DEFAULT_SHIPPING_NAME = "Shipping"


@dataclass
class ClassifiedLineItems:
    products: list[ProductLine] = field(default_factory=list)
    shipping_cost_minor_units: int = 0
    shipping_name: str = DEFAULT_SHIPPING_NAME

    @property
    def products_total_minor_units(self) -> int:
        return sum(p.line_total_minor_units for p in self.products)


def is_shipping_line(description: str) -> bool:
    text = (description or "").lower()
    return any(keyword in text for keyword in SHIPPING_KEYWORDS)


def shipping_line_name(display_name: str) -> str:
    """Label for a shipping line item that ``is_shipping_line`` will recognise."""
    name = (display_name or "").strip()
    if not name:
        return DEFAULT_SHIPPING_NAME
    if is_shipping_line(name):
        return name
    return f"{DEFAULT_SHIPPING_NAME}: {name}"


def _unit_price(item: ReconciledLineItem) -> int:
    if item.unit_amount_minor_units is not None:
        return item.unit_amount_minor_units
    if item.quantity:
        return item.amount_total_minor_units // item.quantity
    return item.amount_total_minor_units


def classify_line_items(items: list[ReconciledLineItem]) -> ClassifiedLineItems:
    result = ClassifiedLineItems()

    for item in items:
        if is_shipping_line(item.description):
            # At most one shipping line is expected; if several match the last one wins
            result.shipping_cost_minor_units = item.amount_total_minor_units
            result.shipping_name = item.description
            continue

        result.products.append(
            ProductLine(
                name=item.description,
                unit_price_minor_units=_unit_price(item),
                quantity=item.quantity,
                description=item.description,
                line_total_minor_units=item.amount_total_minor_units,
            )
        )

    return result
