import os

os.environ.setdefault("ENVIRONMENT", "test")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from storefront.checkout import CheckoutSessionBuilder  # noqa: E402
from storefront.gateway.fake_adapter import FakeGateway  # noqa: E402
from storefront.models import PaymentSession, ReconciledLineItem, ShippingOption  # noqa: E402
from storefront.shipping import ShippingRateService  # noqa: E402
from storefront.store import InMemoryOrderStore  # noqa: E402


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def store():
    return InMemoryOrderStore()


@pytest.fixture()
def builder():
    return CheckoutSessionBuilder(currency="aed", fee_fraction=0.10, shipping_countries=["AE"])


@pytest.fixture()
def standard_shipping():
    return ShippingOption(
        id="shr_standard",
        display_name="Standard",
        amount_minor_units=2000,
        currency="aed",
        tax_behavior="exclusive",
    )


@pytest.fixture()
def client(gateway, store, builder):
    from storefront.main import create_app

    app = create_app(
        gateway=gateway,
        store=store,
        builder=builder,
        shipping=ShippingRateService(gateway, free_shipping_threshold_minor_units=20000, currency="aed"),
        status_policy="permissive",
    )
    return TestClient(app)


def paid_session(
    session_id="cs_test_paid",
    items=(("Hoodie", 500, 1),),
    shipping=None,
    payment_status="paid",
    payment_intent_status="succeeded",
    customer_email="buyer@example.com",
):
    """PaymentSession as the gateway reports it after checkout."""
    line_items = [
        ReconciledLineItem(description=name, amount_total_minor_units=amount * qty, quantity=qty,
                           unit_amount_minor_units=amount)
        for name, amount, qty in items
    ]
    if shipping is not None:
        name, amount = shipping
        line_items.append(ReconciledLineItem(description=name, amount_total_minor_units=amount, quantity=1))
    return PaymentSession(
        id=session_id,
        status="complete" if payment_status == "paid" else "open",
        payment_status=payment_status,
        amount_total_minor_units=sum(li.amount_total_minor_units for li in line_items),
        currency="aed",
        reconciled_line_items=line_items,
        customer_email=customer_email,
        payment_intent_id=f"pi_{session_id}",
        payment_intent_status=payment_intent_status,
    )
