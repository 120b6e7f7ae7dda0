"""Event classifier — maps verified Stripe events to domain events.

Each handled event type registers one decoder with @handles. Decoders parse
``data.object`` into a strict schema and return a DomainEvent; anything they
cannot decode becomes Unhandled(invalid_payload). Types without a decoder
become Unhandled(unsupported_type). classify() never raises.
"""

from __future__ import annotations

import logging
from typing import Callable

from pydantic import ValidationError

from payment_gateway.errors import ClassificationDataError
from payment_gateway.webhooks.models import (
    Charge,
    DomainEvent,
    PaymentSucceeded,
    Unhandled,
    VerifiedEvent,
)

logger = logging.getLogger(__name__)

Decoder = Callable[[VerifiedEvent], DomainEvent]

_DECODERS: dict[str, Decoder] = {}


def handles(event_type: str) -> Callable[[Decoder], Decoder]:
    """Register a decoder for *event_type*."""

    def decorator(fn: Decoder) -> Decoder:
        _DECODERS[event_type] = fn
        return fn

    return decorator


def handled_types() -> list[str]:
    return sorted(_DECODERS)


@handles("charge.succeeded")
def _charge_succeeded(event: VerifiedEvent) -> PaymentSucceeded:
    try:
        charge = Charge.model_validate(event.data_object)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise ClassificationDataError(event.type, f"invalid fields: {fields}") from exc

    return PaymentSucceeded(
        stripe_payment_id=charge.id,
        order_id=charge.metadata.order_id,
        receipt_url=charge.receipt_url,
    )


def classify(event: VerifiedEvent) -> DomainEvent | Unhandled:
    """Classify a verified event. Total: returns a DomainEvent or Unhandled."""
    decoder = _DECODERS.get(event.type)
    if decoder is None:
        logger.info("Event %s not handled (id=%s)", event.type, event.id)
        return Unhandled(event.type, Unhandled.UNSUPPORTED_TYPE)

    try:
        return decoder(event)
    except ClassificationDataError as exc:
        logger.warning(
            "CLASSIFICATION_ERROR type=%s id=%s error=%s",
            event.type,
            event.id,
            exc.message,
        )
        return Unhandled(event.type, Unhandled.INVALID_PAYLOAD, exc)
    except Exception as exc:
        logger.exception("Decoder for %s failed (id=%s)", event.type, event.id)
        return Unhandled(
            event.type,
            Unhandled.INVALID_PAYLOAD,
            ClassificationDataError(event.type, f"decoder failed: {type(exc).__name__}"),
        )
