"""Payment gateway FastAPI application.

Settings are loaded once when the app is built; a missing secret or
redirect URL raises ConfigurationError before any request is served.
The lifespan starts the event publisher (and the session RPC consumer when
enabled) and drains them on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from payment_gateway.bus import StreamBus
from payment_gateway.config import Settings, load_settings
from payment_gateway.publisher import EventPublisher
from payment_gateway.routes import register_payment_routes
from payment_gateway.rpc import REPLY_TYPE, REQUEST_TOPIC, SessionRequestConsumer
from payment_gateway.sessions import CheckoutProcessor, SessionBuilder, StripeCheckoutProcessor
from payment_gateway.webhooks.handlers import register_webhook_routes

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Settings | None = None,
    *,
    bus: StreamBus | None = None,
    processor: CheckoutProcessor | None = None,
) -> FastAPI:
    """Build the app. Collaborators may be injected for tests."""
    settings = settings or load_settings()
    bus = bus or StreamBus(
        settings.redis_url,
        maxlen=settings.stream_maxlen,
        socket_timeout=settings.publish_timeout_seconds,
    )
    publisher = EventPublisher(
        bus,
        stream_prefix=settings.stream_prefix,
        maxsize=settings.publish_queue_size,
        timeout=settings.publish_timeout_seconds,
    )
    builder = SessionBuilder(
        processor or StripeCheckoutProcessor(settings.stripe_secret_key),
        success_url=settings.stripe_success_url,
        cancel_url=settings.stripe_cancel_url,
        timeout=settings.processor_timeout_seconds,
    )
    consumer = None
    if settings.rpc_enabled:
        consumer = SessionRequestConsumer(
            bus,
            builder,
            stream=settings.stream_for(REQUEST_TOPIC),
            default_reply_stream=settings.stream_for(REPLY_TYPE),
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        publisher.start()
        if consumer is not None:
            await consumer.start()
        logger.info("Payment gateway started")
        try:
            yield
        finally:
            if consumer is not None:
                await consumer.stop()
            await publisher.stop()
            bus.close()
            logger.info("Payment gateway stopped")

    app = FastAPI(title="Payment Gateway", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.bus = bus
    app.state.publisher = publisher
    app.state.session_builder = builder

    register_webhook_routes(app)
    register_payment_routes(app)

    @app.get("/health")
    async def health():
        # Bus outages degrade publishing only; the gateway itself stays up.
        bus_up = await asyncio.to_thread(bus.ping)
        return {"status": "ok", "service": "payment-gateway", "bus": "up" if bus_up else "down"}

    return app


def main() -> None:
    import uvicorn

    settings = load_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=3003)


if __name__ == "__main__":
    main()
