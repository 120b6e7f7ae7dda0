"""Checkout session builder.

Turns a cart into a Stripe checkout session. Prices arrive in major
currency units and are converted to integer minor units with Decimal
arithmetic, rounding half up (19.999 -> 2000, 0.005 -> 1). The order id
rides along as payment-intent metadata so charge webhooks can be
correlated back to the order.

One processor call per build(); no retries here. Timeouts and Stripe
errors surface as ProcessorError.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol

import stripe
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from payment_gateway.errors import ProcessorError

logger = logging.getLogger(__name__)

_MINOR_UNITS = Decimal(100)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class CartLineItem(BaseModel):
    """One cart entry, priced in major currency units."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    price: Decimal = Field(ge=0, validation_alias=AliasChoices("price", "unitPrice"))
    quantity: int = Field(ge=1)

    @field_validator("price", mode="before")
    @classmethod
    def _float_via_str(cls, value: Any) -> Any:
        # Decimal(0.1) carries binary noise; Decimal("0.1") does not.
        if isinstance(value, float):
            return str(value)
        return value


class CheckoutSessionRequest(BaseModel):
    """Cart submitted by the order service."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    currency: str = Field(min_length=3, max_length=3)
    items: list[CartLineItem] = Field(min_length=1)
    order_id: str = Field(alias="orderId", min_length=1)

    @field_validator("currency")
    @classmethod
    def _lower_currency(cls, value: str) -> str:
        if not value.isalpha():
            raise ValueError("currency must be an ISO-4217 alphabetic code")
        return value.lower()


class CheckoutSessionResult(BaseModel):
    """Processor-hosted session URLs."""

    model_config = ConfigDict(populate_by_name=True)

    url: str | None = None
    success_url: str | None = Field(default=None, alias="successUrl")
    cancel_url: str | None = Field(default=None, alias="cancelUrl")


# ---------------------------------------------------------------------------
# Amount conversion
# ---------------------------------------------------------------------------


def to_minor_units(amount: Decimal | float | int | str) -> int:
    """Convert a major-unit amount to integer minor units (half up)."""
    if isinstance(amount, float):
        amount = str(amount)
    value = Decimal(amount) * _MINOR_UNITS
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def build_line_items(req: CheckoutSessionRequest) -> list[dict[str, Any]]:
    return [
        {
            "price_data": {
                "currency": req.currency,
                "product_data": {"name": item.name},
                "unit_amount": to_minor_units(item.price),
            },
            "quantity": item.quantity,
        }
        for item in req.items
    ]


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------


class CheckoutProcessor(Protocol):
    async def create_session(self, params: dict[str, Any]) -> Any: ...


class StripeCheckoutProcessor:
    """Creates checkout sessions through stripe.StripeClient."""

    def __init__(self, api_key: str) -> None:
        # Retries belong to the caller, not this adapter.
        self._client = stripe.StripeClient(api_key=api_key, max_network_retries=0)

    async def create_session(self, params: dict[str, Any]) -> Any:
        return await self._client.checkout.sessions.create_async(params=params)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class SessionBuilder:
    """Builds checkout sessions for carts."""

    def __init__(
        self,
        processor: CheckoutProcessor,
        *,
        success_url: str,
        cancel_url: str,
        timeout: float = 10.0,
    ) -> None:
        self._processor = processor
        self._success_url = success_url
        self._cancel_url = cancel_url
        self._timeout = timeout

    def session_params(self, req: CheckoutSessionRequest) -> dict[str, Any]:
        return {
            "payment_intent_data": {"metadata": {"orderId": req.order_id}},
            "line_items": build_line_items(req),
            "mode": "payment",
            "success_url": self._success_url,
            "cancel_url": self._cancel_url,
        }

    async def build(self, req: CheckoutSessionRequest) -> CheckoutSessionResult:
        params = self.session_params(req)
        try:
            session = await asyncio.wait_for(
                self._processor.create_session(params), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Checkout session for order %s timed out", req.order_id)
            raise ProcessorError(
                f"Checkout session creation timed out after {self._timeout}s", exc
            ) from exc
        except stripe.StripeError as exc:
            logger.warning(
                "Stripe rejected checkout session for order %s: %s",
                req.order_id,
                exc.user_message or str(exc),
            )
            raise ProcessorError(str(exc) or type(exc).__name__, exc) from exc

        logger.info("Checkout session created for order %s", req.order_id)
        return CheckoutSessionResult(
            url=_field(session, "url"),
            success_url=_field(session, "success_url"),
            cancel_url=_field(session, "cancel_url"),
        )


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)
