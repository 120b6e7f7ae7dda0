"""Payment gateway error taxonomy.

Only InvalidSignature changes the status code returned to Stripe. Every
other webhook-path error is logged and absorbed so the delivery is still
acknowledged (Stripe retries anything that is not 2xx).
"""

from __future__ import annotations


class PaymentGatewayError(Exception):
    """Base exception for the payment gateway."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(PaymentGatewayError):
    """Required configuration missing or invalid at startup."""


class InvalidSignature(PaymentGatewayError):
    """Webhook body failed signature verification (HTTP 400)."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ProcessorError(PaymentGatewayError):
    """Stripe call failed while creating a checkout session."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ClassificationDataError(PaymentGatewayError):
    """Verified event is missing fields needed to build a domain event."""

    def __init__(self, event_type: str, message: str) -> None:
        super().__init__(f"{event_type}: {message}")
        self.event_type = event_type


class PublishUnavailable(PaymentGatewayError):
    """Message bus could not accept an outbound event."""

    def __init__(self, topic: str, message: str) -> None:
        super().__init__(f"{topic}: {message}")
        self.topic = topic
