"""Webhook HTTP handler — FastAPI route for inbound Stripe webhooks.

Flow: Received -> Verifying -> Classifying -> Publishing -> Acked.

- Reads the raw body (the signature covers the exact bytes)
- Signature failure -> 400 with the reason, nothing published
- Everything else -> 200 {"received": true}, whether or not the event
  produced a domain event. Acknowledgment means "delivery received".
- The signature header is never echoed back
- Every outcome is audit-logged and counted
"""

from __future__ import annotations

import logging
import time
from collections import Counter

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from payment_gateway.errors import InvalidSignature
from payment_gateway.publisher import EventPublisher
from payment_gateway.webhooks.classifier import classify
from payment_gateway.webhooks.models import RawWebhookEvent, Unhandled
from payment_gateway.webhooks.verification import SIGNATURE_HEADER, verify

logger = logging.getLogger(__name__)

ACK_BODY = {"received": True}


class WebhookAudit:
    """Per-status webhook counters for monitoring."""

    def __init__(self) -> None:
        self.counts: Counter[str] = Counter()

    def log(self, event_type: str, event_id: str, status: str) -> None:
        self.counts[status] += 1
        logger.info(
            "WEBHOOK_AUDIT type=%s id=%s status=%s count=%d",
            event_type,
            event_id,
            status,
            self.counts[status],
        )


def process_webhook(
    raw: RawWebhookEvent,
    *,
    secret: str,
    tolerance: int,
    publisher: EventPublisher,
    audit: WebhookAudit,
) -> Response:
    """Run one delivery through verify -> classify -> publish."""
    start = time.time()

    try:
        event = verify(raw.body, raw.signature_header, secret, tolerance=tolerance)
    except InvalidSignature as exc:
        logger.warning("Webhook signature rejected: %s", exc.reason)
        audit.log("unknown", "unknown", "signature_failed")
        return PlainTextResponse(f"Webhook Error: {exc.reason}", status_code=400)

    result = classify(event)
    if isinstance(result, Unhandled):
        audit.log(event.type, event.id, result.reason)
    else:
        publisher.publish(result.topic, result)
        audit.log(event.type, event.id, "published")

    elapsed_ms = (time.time() - start) * 1000
    logger.debug("Webhook processed in %.1fms: %s", elapsed_ms, event.type)
    return JSONResponse(ACK_BODY, status_code=200)


def register_webhook_routes(app: FastAPI) -> None:
    """Register webhook routes. Expects app.state.settings and app.state.publisher."""
    app.state.webhook_audit = WebhookAudit()

    @app.post("/payments/webhook")
    async def stripe_webhook(request: Request):
        """Receive Stripe webhooks (signature-verified)."""
        settings = request.app.state.settings
        raw = RawWebhookEvent(
            body=await request.body(),
            signature_header=request.headers.get(SIGNATURE_HEADER),
        )
        return process_webhook(
            raw,
            secret=settings.stripe_webhook_secret,
            tolerance=settings.webhook_tolerance_seconds,
            publisher=request.app.state.publisher,
            audit=request.app.state.webhook_audit,
        )

    @app.get("/payments/webhook/status")
    async def webhook_status(request: Request):
        """Webhook outcome counts and publisher stats."""
        return {
            "counts": dict(request.app.state.webhook_audit.counts),
            "publisher": request.app.state.publisher.stats(),
        }

    logger.info("Webhook routes registered: /payments/webhook")
