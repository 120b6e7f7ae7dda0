"""Shared fixtures for the payment gateway test suite."""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

import pytest

from payment_gateway.config import Settings, load_settings
from payment_gateway.webhooks.models import VerifiedEvent
from payment_gateway.webhooks.verification import sign_payload, verify

WEBHOOK_SECRET = "whsec_test_secret"


class FakeBus:
    """Records publishes; can simulate an unreachable or slow Redis."""

    def __init__(
        self,
        result: str | None = "1700000000000-0",
        exc: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.result = result
        self.exc = exc
        self.delay = delay
        self.published: list[tuple[str, str, dict[str, Any], dict[str, Any]]] = []
        self.closed = False
        self.reachable = True

    def publish(self, stream: str, msg_type: str, payload: dict[str, Any], **kwargs: Any):
        if self.delay:
            time.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        self.published.append((stream, msg_type, payload, kwargs))
        return self.result

    def close(self) -> None:
        self.closed = True

    def ping(self) -> bool:
        return self.reachable


class FakeProcessor:
    """Stands in for Stripe's checkout-session API."""

    def __init__(
        self,
        session: dict[str, Any] | None = None,
        exc: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.session = session or {
            "id": "cs_test_1",
            "url": "https://checkout.stripe.com/c/pay/cs_test_1",
            "success_url": "http://localhost:3003/payments/success",
            "cancel_url": "http://localhost:3003/payments/cancelled",
        }
        self.exc = exc
        self.delay = delay
        self.calls: list[dict[str, Any]] = []

    async def create_session(self, params: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(params)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.session


def charge_succeeded(order_id: str | None = "ord_1", **overrides: Any) -> dict[str, Any]:
    """A charge.succeeded event envelope as Stripe sends it."""
    metadata = {} if order_id is None else {"orderId": order_id}
    charge = {
        "id": "ch_3Abc",
        "object": "charge",
        "amount": 2000,
        "currency": "usd",
        "metadata": metadata,
        "receipt_url": "https://pay.stripe.com/receipts/ch_3Abc",
    }
    charge.update(overrides)
    return {"id": "evt_1", "type": "charge.succeeded", "data": {"object": charge}}


@pytest.fixture()
def settings() -> Settings:
    return load_settings(
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_success_url="http://localhost:3003/payments/success",
        stripe_cancel_url="http://localhost:3003/payments/cancelled",
        publish_timeout_seconds=0.5,
        processor_timeout_seconds=0.5,
    )


@pytest.fixture()
def bus() -> FakeBus:
    return FakeBus()


@pytest.fixture()
def processor() -> FakeProcessor:
    return FakeProcessor()


@pytest.fixture()
def signed():
    """Factory: payload dict -> (body bytes, Stripe-Signature header)."""

    def _signed(payload: dict[str, Any], secret: str = WEBHOOK_SECRET, timestamp: int | None = None):
        body = json.dumps(payload).encode()
        return body, sign_payload(body, secret, timestamp)

    return _signed


@pytest.fixture()
def verified_event(signed):
    """Factory: payload dict -> VerifiedEvent (through the real verifier)."""

    def _verified(payload: dict[str, Any]) -> VerifiedEvent:
        body, header = signed(payload)
        return verify(body, header, WEBHOOK_SECRET)

    return _verified


@pytest.fixture()
def make_bus():
    return FakeBus


@pytest.fixture()
def make_processor():
    return FakeProcessor


@pytest.fixture()
def charge_event():
    return charge_succeeded
