from storefront.classifier import (
    DEFAULT_SHIPPING_NAME,
    classify_line_items,
    is_shipping_line,
    shipping_line_name,
)
from storefront.models import ReconciledLineItem


def item(description, amount, quantity=1, unit=None):
    return ReconciledLineItem(
        description=description,
        amount_total_minor_units=amount,
        quantity=quantity,
        unit_amount_minor_units=unit,
    )


def test_splits_product_and_shipping():
    result = classify_line_items([item("Hoodie", 500), item("Shipping & Handling", 20)])

    assert [(p.name, p.line_total_minor_units) for p in result.products] == [("Hoodie", 500)]
    assert result.products[0].unit_price_minor_units == 500
    assert result.shipping_cost_minor_units == 20
    assert result.shipping_name == "Shipping & Handling"


def test_no_shipping_line_defaults():
    result = classify_line_items([item("Mug", 1500), item("Print", 4999)])

    assert [p.name for p in result.products] == ["Mug", "Print"]
    assert result.shipping_cost_minor_units == 0
    assert result.shipping_name == DEFAULT_SHIPPING_NAME
    assert result.products_total_minor_units == 6499


def test_last_matching_shipping_line_wins():
    result = classify_line_items([item("Express Delivery", 3000), item("Poster", 800), item("Handling fee", 500)])

    assert result.shipping_cost_minor_units == 500
    assert result.shipping_name == "Handling fee"
    assert [p.name for p in result.products] == ["Poster"]


def test_trigger_word_in_product_name_is_read_as_shipping():
    result = classify_line_items([item("Delivery Box Organizer", 4500)])

    assert result.products == []
    assert result.shipping_cost_minor_units == 4500


def test_matching_is_case_insensitive():
    assert is_shipping_line("STANDARD SHIPPING")
    assert is_shipping_line("Next-day delivery")
    assert not is_shipping_line("Canvas tote")
    assert not is_shipping_line("")


def test_unit_price_falls_back_to_division():
    result = classify_line_items([item("T-Shirt", 10000, quantity=2), item("Cap", 3000, quantity=3, unit=1000)])

    assert result.products[0].unit_price_minor_units == 5000
    assert result.products[0].quantity == 2
    assert result.products[1].unit_price_minor_units == 1000


def test_shipping_line_name_is_recognisable():
    assert shipping_line_name("Standard Shipping") == "Standard Shipping"
    assert shipping_line_name("Express") == "Shipping: Express"
    assert shipping_line_name("  ") == DEFAULT_SHIPPING_NAME
    assert is_shipping_line(shipping_line_name("Aramex 2-day"))
