"""Fire-and-forget event publisher.

The webhook handler enqueues onto a bounded asyncio.Queue and returns. A
single background task drains the queue into the message bus, each send
bounded by a timeout. Bus outages are logged and counted, never raised:
Stripe must still get its acknowledgment.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from payment_gateway.errors import PublishUnavailable
from payment_gateway.webhooks.models import DomainEvent

logger = logging.getLogger(__name__)


class Bus(Protocol):
    def publish(
        self, stream: str, msg_type: str, payload: dict[str, Any], **kwargs: Any
    ) -> str | None: ...


class EventPublisher:
    """Bounded outbound queue with a background sender task."""

    def __init__(
        self,
        bus: Bus,
        *,
        stream_prefix: str = "",
        maxsize: int = 1000,
        timeout: float = 2.0,
    ) -> None:
        self._bus = bus
        self._stream_prefix = stream_prefix
        self._timeout = timeout
        self._queue: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task | None = None
        self._counts = {"queued": 0, "published": 0, "failed": 0, "dropped": 0}

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def stats(self) -> dict[str, int]:
        return {**self._counts, "pending": self._queue.qsize()}

    def publish(self, topic: str, event: DomainEvent) -> None:
        """Enqueue *event* for delivery on *topic*. Never blocks, never raises."""
        message = event.to_message()
        if not self.running:
            self._unavailable(topic, message, "publisher not running", "dropped")
            return
        try:
            self._queue.put_nowait((topic, message))
        except asyncio.QueueFull:
            self._unavailable(topic, message, "outbound queue full", "dropped")
            return
        self._counts["queued"] += 1

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="event-publisher")
        logger.info("Event publisher started (maxsize=%d)", self._queue.maxsize)

    async def stop(self) -> None:
        """Drain queued events, then stop the sender task."""
        if self._task is None:
            return
        try:
            await asyncio.wait_for(
                self._queue.join(), timeout=self._timeout * (self._queue.qsize() + 1)
            )
        except asyncio.TimeoutError:
            logger.warning("Publisher stopped with %d events pending", self._queue.qsize())
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Event publisher stopped: %s", self.stats())

    # -----------------------------------------------------------------------
    # Sender
    # -----------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            topic, message = await self._queue.get()
            try:
                await self._send(topic, message)
            finally:
                self._queue.task_done()

    async def _send(self, topic: str, message: dict[str, Any]) -> None:
        stream = f"{self._stream_prefix}{topic}"
        try:
            entry_id = await asyncio.wait_for(
                asyncio.to_thread(self._bus.publish, stream, topic, message),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            self._unavailable(topic, message, f"publish timed out after {self._timeout}s")
            return
        except Exception as exc:
            self._unavailable(topic, message, f"{type(exc).__name__}: {exc}")
            return

        if entry_id is None:
            self._unavailable(topic, message, "bus unreachable")
            return
        self._counts["published"] += 1
        logger.info("Published %s entry=%s payload=%s", topic, entry_id, message)

    def _unavailable(
        self, topic: str, message: dict[str, Any], reason: str, counter: str = "failed"
    ) -> None:
        self._counts[counter] += 1
        err = PublishUnavailable(topic, reason)
        logger.warning(
            "PUBLISH_UNAVAILABLE topic=%s error=%s payload=%s count=%d",
            topic,
            err.message,
            message,
            self._counts[counter],
        )
