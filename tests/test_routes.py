"""HTTP tests for session creation and redirect routes."""

from __future__ import annotations

from unittest.mock import MagicMock

import stripe
from fastapi.testclient import TestClient

from payment_gateway.serve import create_app

CART = {
    "currency": "usd",
    "items": [
        {"name": "Classic Tee", "price": 20.00, "quantity": 1},
        {"name": "Sticker", "price": 19.999, "quantity": 2},
    ],
    "orderId": "ord_1",
}


class TestCreatePaymentSession:
    def test_returns_session_urls(self, settings, bus, processor):
        with TestClient(create_app(settings, bus=bus, processor=processor)) as client:
            resp = client.post("/payments/create-payment-session", json=CART)

        assert resp.status_code == 200
        assert resp.json() == {
            "url": "https://checkout.stripe.com/c/pay/cs_test_1",
            "successUrl": "http://localhost:3003/payments/success",
            "cancelUrl": "http://localhost:3003/payments/cancelled",
        }

    def test_params_sent_to_processor(self, settings, bus, processor):
        with TestClient(create_app(settings, bus=bus, processor=processor)) as client:
            client.post("/payments/create-payment-session", json=CART)

        assert len(processor.calls) == 1
        params = processor.calls[0]
        assert params["payment_intent_data"]["metadata"] == {"orderId": "ord_1"}
        assert [li["price_data"]["unit_amount"] for li in params["line_items"]] == [2000, 2000]
        assert [li["quantity"] for li in params["line_items"]] == [1, 2]
        assert params["success_url"] == settings.stripe_success_url
        assert params["cancel_url"] == settings.stripe_cancel_url

    def test_empty_cart_rejected(self, settings, bus, processor):
        with TestClient(create_app(settings, bus=bus, processor=processor)) as client:
            resp = client.post(
                "/payments/create-payment-session",
                json={**CART, "items": []},
            )

        assert resp.status_code == 422
        assert processor.calls == []

    def test_missing_order_id_rejected(self, settings, bus, processor):
        cart = {k: v for k, v in CART.items() if k != "orderId"}
        with TestClient(create_app(settings, bus=bus, processor=processor)) as client:
            resp = client.post("/payments/create-payment-session", json=cart)

        assert resp.status_code == 422

    def test_processor_error_returns_502(self, settings, bus, make_processor):
        processor = make_processor(exc=stripe.AuthenticationError("Invalid API Key provided"))
        with TestClient(create_app(settings, bus=bus, processor=processor)) as client:
            resp = client.post("/payments/create-payment-session", json=CART)

        assert resp.status_code == 502
        assert resp.json()["detail"] == "Payment processor error: Invalid API Key provided"
        assert len(processor.calls) == 1


class TestRedirectRoutes:
    def test_success(self, settings, bus, processor):
        with TestClient(create_app(settings, bus=bus, processor=processor)) as client:
            resp = client.get("/payments/success")
        assert resp.json() == {"ok": True, "message": "Payment Successful"}

    def test_cancelled(self, settings, bus, processor):
        with TestClient(create_app(settings, bus=bus, processor=processor)) as client:
            resp = client.get("/payments/cancelled")
        assert resp.json() == {"ok": False, "message": "Payment Cancelled"}

    def test_health(self, settings, bus, processor):
        with TestClient(create_app(settings, bus=bus, processor=processor)) as client:
            resp = client.get("/health")
        assert resp.json() == {"status": "ok", "service": "payment-gateway", "bus": "up"}

    def test_health_reports_bus_down(self, settings, bus, processor):
        bus.reachable = False
        with TestClient(create_app(settings, bus=bus, processor=processor)) as client:
            resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["bus"] == "down"

    def test_shutdown_closes_bus(self, settings, bus, processor):
        with TestClient(create_app(settings, bus=bus, processor=processor)):
            pass
        assert bus.closed


class TestSessionRpcLifecycle:
    def test_consumer_started_when_enabled(self, settings, processor):
        bus = MagicMock()
        bus.read_batch.return_value = []
        app = create_app(
            settings.model_copy(update={"rpc_enabled": True}), bus=bus, processor=processor
        )

        with TestClient(app):
            pass

        bus.ensure_consumer_group.assert_called_once_with("payments:create.payment.session")
        bus.close.assert_called_once()

    def test_consumer_off_by_default(self, settings, processor):
        bus = MagicMock()
        with TestClient(create_app(settings, bus=bus, processor=processor)):
            pass
        bus.ensure_consumer_group.assert_not_called()
