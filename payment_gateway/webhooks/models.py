"""Webhook event models.

VerifiedEvent can only be minted by the signature verifier; DomainEvents
can only be decoded from a VerifiedEvent by the classifier.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from payment_gateway.errors import ClassificationDataError

# Held by verification.py; any other caller constructing a VerifiedEvent fails.
_VERIFIER_TOKEN = object()


@dataclass(frozen=True)
class RawWebhookEvent:
    """Inbound delivery exactly as transmitted."""

    body: bytes
    signature_header: str | None


@dataclass(frozen=True)
class VerifiedEvent:
    """A webhook event whose signature has been checked."""

    id: str
    type: str
    payload: dict[str, Any]
    raw_body: bytes = field(repr=False)
    signed_at: int
    _token: object = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self._token is not _VERIFIER_TOKEN:
            raise TypeError("VerifiedEvent can only be created by the signature verifier")

    @property
    def data_object(self) -> Any:
        """The ``data.object`` member Stripe wraps each event around."""
        data = self.payload.get("data")
        if not isinstance(data, dict):
            return None
        return data.get("object")


# ---------------------------------------------------------------------------
# Domain events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DomainEvent(ABC):
    """Typed business event forwarded to the message bus."""

    topic: ClassVar[str] = ""

    @abstractmethod
    def to_message(self) -> dict[str, Any]:
        """Bus payload, camelCase keys."""


@dataclass(frozen=True)
class PaymentSucceeded(DomainEvent):
    """A charge succeeded for an order. stripe_payment_id is the idempotency key."""

    topic: ClassVar[str] = "payment.succeeded"

    stripe_payment_id: str
    order_id: str
    receipt_url: str | None = None

    def to_message(self) -> dict[str, Any]:
        return {
            "stripePaymentId": self.stripe_payment_id,
            "orderId": self.order_id,
            "receiptUrl": self.receipt_url,
        }


@dataclass(frozen=True)
class Unhandled:
    """Classification marker for events that produce no DomainEvent."""

    UNSUPPORTED_TYPE: ClassVar[str] = "unsupported_type"
    INVALID_PAYLOAD: ClassVar[str] = "invalid_payload"

    event_type: str
    reason: str = "unsupported_type"
    error: ClassificationDataError | None = field(default=None, compare=False)


# ---------------------------------------------------------------------------
# Per-type payload schemas
# ---------------------------------------------------------------------------


class ChargeMetadata(BaseModel):
    """Metadata copied from the payment intent onto the charge."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    order_id: str = Field(alias="orderId", min_length=1)


class Charge(BaseModel):
    """``data.object`` of a ``charge.*`` event."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    metadata: ChargeMetadata
    receipt_url: str | None = None
