"""Payment gateway configuration.

Loaded once at process start and handed to each component. Missing Stripe
credentials or redirect URLs abort startup instead of failing per request.
"""

from __future__ import annotations

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from payment_gateway.errors import ConfigurationError


class Settings(BaseSettings):
    """Environment-driven settings for the payment gateway."""

    stripe_secret_key: str = Field(min_length=1)
    stripe_webhook_secret: str = Field(min_length=1)
    stripe_success_url: str = Field(min_length=1)
    stripe_cancel_url: str = Field(min_length=1)

    redis_url: str = "redis://localhost:6379/0"
    stream_prefix: str = "payments:"
    stream_maxlen: int = 5000

    webhook_tolerance_seconds: int = 300
    processor_timeout_seconds: float = 10.0
    publish_timeout_seconds: float = 2.0
    publish_queue_size: int = 1000

    rpc_enabled: bool = False
    log_level: str = "INFO"

    model_config = {
        "env_prefix": "PAYMENTS_",
        "env_file": ".env",
        "extra": "ignore",
        "frozen": True,
    }

    def stream_for(self, topic: str) -> str:
        """Redis stream name carrying messages for *topic*."""
        return f"{self.stream_prefix}{topic}"


def load_settings(**overrides) -> Settings:
    """Build Settings from the environment, raising ConfigurationError on gaps."""
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        raise ConfigurationError(
            "Invalid payment gateway configuration: " + ", ".join(fields)
        ) from exc
