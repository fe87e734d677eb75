import json

from storefront.errors import GatewayUnavailable
from storefront.gateway.fake_adapter import TEST_SIGNATURE
from storefront.models import DeliveryEstimate, ShippingOption

from .conftest import paid_session

CART = {
    "items": [
        {"id": 7, "name": "T-Shirt", "price": 50, "quantity": 2, "imageUrl": "https://img/tee.jpg"},
    ],
    "shippingOption": {
        "id": "shr_standard",
        "displayName": "Standard",
        "amountMinorUnits": 2000,
        "currency": "aed",
    },
    "successUrl": "https://shop.example/success?session_id={CHECKOUT_SESSION_ID}",
    "cancelUrl": "https://shop.example/cart",
}


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


class TestCheckoutSession:
    def test_empty_cart_never_reaches_gateway(self, client, gateway):
        r = client.post("/checkout/session", json={**CART, "items": []})

        assert r.status_code == 400
        assert r.json()["error"]["code"] == "invalid_request"
        assert gateway.calls == []

    def test_creates_session_with_idempotency_key(self, client, gateway):
        r = client.post("/checkout/session", json=CART, headers={"Idempotency-Key": "cart-123"})

        assert r.status_code == 200
        body = r.json()
        assert body["sessionId"].startswith("cs_test_")
        assert body["url"].endswith(body["sessionId"])
        call = gateway.calls_to("create_session")[0]
        assert call["idempotency_key"] == "cart-123"
        assert call["request"].total_minor_units == 12000

    def test_gateway_outage_is_503(self, client, gateway):
        gateway.configure(failure=GatewayUnavailable("timeout"))

        r = client.post("/checkout/session", json=CART)

        assert r.status_code == 503
        assert r.json()["error"]["code"] == "gateway_unavailable"

    def test_get_session(self, client, gateway):
        gateway.add_session(paid_session())

        r = client.get("/checkout/session", params={"sessionId": "cs_test_paid"})

        assert r.status_code == 200
        session = r.json()["session"]
        assert session["paymentStatus"] == "paid"
        assert session["amountTotalMinorUnits"] == 500

    def test_get_session_requires_id(self, client):
        assert client.get("/checkout/session").status_code == 400

    def test_get_unknown_session(self, client):
        r = client.get("/checkout/session", params={"sessionId": "cs_missing"})

        assert r.status_code == 502
        assert r.json()["error"]["code"] == "gateway_error"


class TestOrderFromSession:
    def test_full_flow_is_idempotent(self, client, gateway, store):
        session_id = client.post("/checkout/session", json=CART).json()["sessionId"]
        gateway.complete_session(session_id, customer_email="buyer@example.com")

        first = client.post("/orders/from-session", json={"sessionId": session_id, "userId": "user-1"})
        second = client.post("/orders/from-session", json={"sessionId": session_id, "userId": "user-1"})

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json()["orderId"] == second.json()["orderId"]
        order = first.json()["order"]
        assert order["subtotalMinorUnits"] == 10000
        assert order["shippingCostMinorUnits"] == 2000
        assert order["totalMinorUnits"] == 12000
        assert order["shippingName"] == "Shipping: Standard"
        assert order["customerEmail"] == "buyer@example.com"
        assert order["products"][0]["name"] == "T-Shirt"
        assert store.count() == 1

    def test_missing_session_id(self, client, gateway):
        r = client.post("/orders/from-session", json={})

        assert r.status_code == 400
        assert gateway.calls == []

    def test_unpaid_session(self, client, gateway, store):
        gateway.add_session(paid_session(payment_status="unpaid", payment_intent_status="requires_payment_method"))

        r = client.post("/orders/from-session", json={"sessionId": "cs_test_paid"})

        assert r.status_code == 400
        assert r.json()["error"]["code"] == "payment_not_complete"
        assert r.json()["error"]["details"]["payment_status"] == "unpaid"
        assert store.count() == 0


class TestOrderQueries:
    def make_order(self, client, gateway, session_id, user_id):
        gateway.add_session(paid_session(session_id=session_id))
        return client.post("/orders/from-session", json={"sessionId": session_id, "userId": user_id}).json()["orderId"]

    def test_list_by_user_and_all(self, client, gateway):
        mine = self.make_order(client, gateway, "cs_a", "user-1")
        self.make_order(client, gateway, "cs_b", "user-2")

        r = client.get("/orders", params={"userId": "user-1"})
        assert [o["id"] for o in r.json()] == [mine]
        assert len(client.get("/orders/all").json()) == 2

    def test_list_requires_user(self, client):
        assert client.get("/orders").status_code == 400

    def test_get_order(self, client, gateway):
        order_id = self.make_order(client, gateway, "cs_a", "user-1")

        assert client.get(f"/orders/{order_id}").json()["sessionId"] == "cs_a"
        r = client.get("/orders/does-not-exist")
        assert r.status_code == 404
        assert r.json()["error"]["code"] == "order_not_found"

    def test_status_updates(self, client, gateway):
        order_id = self.make_order(client, gateway, "cs_a", "user-1")

        r = client.patch(f"/orders/{order_id}/status", json={"status": "shipped"})
        assert r.status_code == 200
        assert r.json()["status"] == "shipped"

        assert client.patch(f"/orders/{order_id}/status", json={"status": "lost"}).status_code == 400
        assert client.patch(f"/orders/{order_id}/status", json={"status": "pending"}).status_code == 409
        assert client.patch("/orders/nope/status", json={"status": "shipped"}).status_code == 404
        assert client.get(f"/orders/{order_id}").json()["status"] == "shipped"


class TestShippingRates:
    def setup_rates(self, gateway):
        gateway.shipping_rates["acct_seller"] = [
            ShippingOption(
                id="shr_standard",
                display_name="Standard",
                amount_minor_units=2000,
                currency="aed",
                delivery_estimate=DeliveryEstimate(min_days=3, max_days=5),
            )
        ]

    def test_below_threshold(self, client, gateway):
        self.setup_rates(gateway)

        r = client.post("/shipping/rates", json={"connectedAccountId": "acct_seller", "orderTotal": 120})

        rates = r.json()["rates"]
        assert [rate["id"] for rate in rates] == ["shr_standard"]
        assert rates[0]["deliveryLabel"] == "3-5 business days"

    def test_free_shipping_offered_first(self, client, gateway):
        self.setup_rates(gateway)

        r = client.post("/shipping/rates", json={"connectedAccountId": "acct_seller", "orderTotal": 250})

        rates = r.json()["rates"]
        assert [rate["id"] for rate in rates] == ["free_shipping", "shr_standard"]
        assert rates[0]["amountMinorUnits"] == 0

    def test_requires_account(self, client, gateway):
        r = client.post("/shipping/rates", json={"orderTotal": 250})

        assert r.status_code == 400
        assert gateway.calls == []


class TestRefunds:
    def test_refund(self, client, gateway):
        gateway.add_session(paid_session())

        r = client.post("/payments/refund", json={"paymentIntentId": "pi_cs_test_paid", "amountMinorUnits": 200})

        assert r.status_code == 200
        refund = r.json()["refund"]
        assert refund["amountMinorUnits"] == 200
        assert refund["status"] == "succeeded"
        assert gateway.calls_to("create_refund")[0]["reason"] == "requested_by_customer"

    def test_refund_requires_intent(self, client):
        assert client.post("/payments/refund", json={}).status_code == 400


class TestWebhook:
    def post_event(self, client, event, signature=TEST_SIGNATURE):
        return client.post(
            "/webhooks/gateway",
            content=json.dumps(event),
            headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
        )

    def completed(self, session_id, user_id=None):
        metadata = {"user_id": user_id} if user_id else {}
        return {"type": "checkout.session.completed", "data": {"object": {"id": session_id, "metadata": metadata}}}

    def test_completed_event_creates_order_once(self, client, gateway, store):
        gateway.add_session(paid_session())

        first = self.post_event(client, self.completed("cs_test_paid", "user-9"))
        replay = self.post_event(client, self.completed("cs_test_paid", "user-9"))

        assert first.status_code == 200
        assert first.json()["orderId"] == replay.json()["orderId"]
        assert store.count() == 1
        assert store.list_for_user("user-9")[0].session_id == "cs_test_paid"

    def test_webhook_and_redirect_agree(self, client, gateway):
        gateway.add_session(paid_session())

        hook = self.post_event(client, self.completed("cs_test_paid"))
        redirect = client.post("/orders/from-session", json={"sessionId": "cs_test_paid"})

        assert hook.json()["orderId"] == redirect.json()["orderId"]

    def test_unpaid_session_is_acknowledged(self, client, gateway, store):
        gateway.add_session(paid_session(payment_status="unpaid", payment_intent_status="processing"))

        r = self.post_event(client, self.completed("cs_test_paid"))

        assert r.status_code == 200
        assert r.json() == {"received": True}
        assert store.count() == 0

    def test_bad_signature(self, client, store):
        r = self.post_event(client, self.completed("cs_test_paid"), signature="forged")

        assert r.status_code == 400
        assert r.json()["error"]["code"] == "invalid_signature"
        assert store.count() == 0

    def test_other_events_ignored(self, client, gateway):
        r = self.post_event(client, {"type": "charge.refunded", "data": {"object": {"id": "ch_1"}}})

        assert r.json() == {"received": True}
        assert gateway.calls_to("retrieve_session") == []


def test_cors_preflight(client):
    r = client.options(
        "/checkout/session",
        headers={"Origin": "https://shop.example", "Access-Control-Request-Method": "POST"},
    )

    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "*"
