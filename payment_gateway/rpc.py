"""Session creation over the message bus.

Order services that cannot call the HTTP route send a
``create.payment.session`` message instead. The consumer reads the request
stream in the payment-gateway consumer group, builds the session and
publishes the result to the stream named in ``reply_to``, correlated by the
request ``msg_id``.

Entries are acked once handled, including malformed ones, so a bad message
cannot wedge the group.
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket
from typing import Any

from pydantic import ValidationError

from payment_gateway.bus import StreamBus
from payment_gateway.errors import ProcessorError
from payment_gateway.sessions import CheckoutSessionRequest, SessionBuilder

logger = logging.getLogger(__name__)

REQUEST_TOPIC = "create.payment.session"
REPLY_TYPE = "create.payment.session.reply"


class SessionRequestConsumer:
    """Background consumer answering session requests from the bus."""

    def __init__(
        self,
        bus: StreamBus,
        builder: SessionBuilder,
        *,
        stream: str,
        default_reply_stream: str,
        consumer_name: str | None = None,
        block_ms: int = 2000,
        retry_delay: float = 1.0,
    ) -> None:
        self._bus = bus
        self._builder = builder
        self._stream = stream
        self._default_reply_stream = default_reply_stream
        self._consumer_name = consumer_name or f"gateway-{socket.gethostname()}"
        self._block_ms = block_ms
        self._retry_delay = retry_delay
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        await asyncio.to_thread(self._bus.ensure_consumer_group, self._stream)
        self._task = asyncio.create_task(self._run(), name="session-rpc")
        logger.info("Session RPC consuming %s as %s", self._stream, self._consumer_name)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Session RPC batch failed on %s", self._stream)
                await asyncio.sleep(self._retry_delay)

    async def poll_once(self) -> int:
        """Read and handle one batch. Returns the number of entries handled."""
        entries = await asyncio.to_thread(
            self._bus.read_batch, self._stream, self._consumer_name, block_ms=self._block_ms
        )
        for entry_id, fields in entries:
            await self.handle_entry(fields)
            await asyncio.to_thread(self._bus.ack, self._stream, entry_id)
        return len(entries)

    async def handle_entry(self, fields: dict[str, str]) -> dict[str, Any]:
        """Build a session for one request entry and publish the reply."""
        msg_id = fields.get("msg_id", "")
        reply_stream = fields.get("reply_to") or self._default_reply_stream

        try:
            request = CheckoutSessionRequest.model_validate(json.loads(fields.get("payload", "")))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Malformed session request %s: %s", msg_id, exc)
            reply: dict[str, Any] = {"error": "invalid request"}
        else:
            try:
                result = await self._builder.build(request)
                reply = result.model_dump(by_alias=True)
            except ProcessorError as exc:
                reply = {"error": f"Payment processor error: {exc.message}"}
            except Exception:
                logger.exception("Session request %s failed", msg_id)
                reply = {"error": "internal error"}

        entry_id = await asyncio.to_thread(
            self._bus.publish, reply_stream, REPLY_TYPE, reply, correlation_id=msg_id
        )
        if entry_id is None:
            logger.warning("Session reply for %s could not be published", msg_id)
        return reply
