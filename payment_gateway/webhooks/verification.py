"""Stripe webhook signature verification.

Security contract:
- The signature is computed over the exact received bytes; never re-serialize first
- All comparisons use hmac.compare_digest() (constant-time)
- Missing secret -> verification always fails (fail-closed)
- Timestamp tolerance (default 300s) in both directions to block replays
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time

from payment_gateway.errors import InvalidSignature
from payment_gateway.webhooks.models import _VERIFIER_TOKEN, VerifiedEvent

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "stripe-signature"
DEFAULT_TOLERANCE = 300
EXPECTED_SCHEME = "v1"


def _parse_header(signature_header: str) -> tuple[int, list[str]]:
    """Split ``t=<ts>,v1=<sig>[,v1=<sig>...]`` into timestamp and v1 signatures."""
    timestamp = None
    signatures: list[str] = []
    for item in signature_header.split(","):
        kv = item.strip().split("=", 1)
        if len(kv) != 2:
            continue
        key, value = kv
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                timestamp = None
        elif key == EXPECTED_SCHEME:
            signatures.append(value)

    if timestamp is None:
        raise InvalidSignature("Unable to extract timestamp and signatures from header")
    return timestamp, signatures


def compute_signature(raw_body: bytes, secret: str, timestamp: int) -> str:
    """HMAC-SHA256 hex digest of ``<timestamp>.<body>``."""
    signed_payload = f"{timestamp}.".encode("utf-8") + raw_body
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def verify(
    raw_body: bytes,
    signature_header: str | None,
    secret: str,
    *,
    tolerance: int = DEFAULT_TOLERANCE,
    now: float | None = None,
) -> VerifiedEvent:
    """Verify a Stripe webhook delivery and decode its envelope.

    Args:
        raw_body: Request body bytes exactly as received
        signature_header: Value of the Stripe-Signature header
        secret: Endpoint signing secret (whsec_...)
        tolerance: Maximum allowed clock skew in seconds
        now: Current unix time (defaults to time.time())

    Returns:
        VerifiedEvent carrying the decoded payload

    Raises:
        InvalidSignature: on any verification or envelope failure
    """
    if not secret:
        logger.warning("Webhook signing secret not set, rejecting webhook")
        raise InvalidSignature("No webhook signing secret configured")
    if not signature_header:
        raise InvalidSignature("No signature header")

    timestamp, signatures = _parse_header(signature_header)
    if not signatures:
        raise InvalidSignature("No signatures found with expected scheme")

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance:
        logger.warning("Stripe webhook timestamp too old/future: %s", timestamp)
        raise InvalidSignature("Timestamp outside the tolerance zone")

    expected = compute_signature(raw_body, secret, timestamp)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise InvalidSignature(
            "No signatures found matching the expected signature for payload"
        )

    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError):
        raise InvalidSignature("Invalid payload") from None
    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        raise InvalidSignature("Invalid payload")

    return VerifiedEvent(
        id=str(payload.get("id") or ""),
        type=payload["type"],
        payload=payload,
        raw_body=raw_body,
        signed_at=timestamp,
        _token=_VERIFIER_TOKEN,
    )


def sign_payload(raw_body: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header value for *raw_body*.

    Used by tests and local tooling that replay deliveries.
    """
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},{EXPECTED_SCHEME}={compute_signature(raw_body, secret, ts)}"
