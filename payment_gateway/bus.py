"""Redis Streams message bus — publish + consume utilities.

Messages are added via XADD with an auto-generated stream ID (*). Each
StreamBus owns one lazily-created Redis connection built from the URL it
was given at startup.

If Redis is unreachable, publishes return None instead of raising
(fail-open). Callers that need to observe the loss check the return value.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any

import redis

logger = logging.getLogger(__name__)

# Consumer group name for the payment gateway
CONSUMER_GROUP = "payment-gateway"

_DEFAULT_MAXLEN = 5000


class StreamBus:
    """Thin Redis Streams client used by the publisher and the session RPC."""

    def __init__(
        self,
        redis_url: str,
        *,
        maxlen: int = _DEFAULT_MAXLEN,
        source: str = "payment-gateway",
        socket_timeout: float | None = 2.0,
    ) -> None:
        self._redis_url = redis_url
        self._maxlen = maxlen
        self._source = source
        self._socket_timeout = socket_timeout
        self._client: redis.Redis | None = None

    # -----------------------------------------------------------------------
    # Redis connection
    # -----------------------------------------------------------------------

    def _get_redis(self) -> redis.Redis:
        """Get or create the Redis client."""
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                decode_responses=True,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception:
                logger.debug("Error closing Redis client", exc_info=True)
            self._client = None

    # -----------------------------------------------------------------------
    # Publishing
    # -----------------------------------------------------------------------

    def publish(
        self,
        stream: str,
        msg_type: str,
        payload: dict[str, Any],
        *,
        msg_id: str | None = None,
        correlation_id: str | None = None,
    ) -> str | None:
        """Publish a message to a Redis Stream.

        Never raises. Returns the Redis stream entry ID or None on failure.
        """
        if msg_id is None:
            msg_id = uuid.uuid4().hex[:16]

        entry = {
            "msg_id": msg_id,
            "msg_type": msg_type,
            "source": self._source,
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S+00:00", time.gmtime()),
            "payload": json.dumps(payload, default=str),
        }
        if correlation_id:
            entry["correlation_id"] = correlation_id

        try:
            r = self._get_redis()
            return r.xadd(stream, entry, maxlen=self._maxlen, approximate=True)
        except Exception:
            logger.warning(
                "Bus publish failed: stream=%s type=%s", stream, msg_type,
                exc_info=True,
            )
            return None

    # -----------------------------------------------------------------------
    # Consuming
    # -----------------------------------------------------------------------

    def ensure_consumer_group(self, stream: str, group: str = CONSUMER_GROUP) -> None:
        """Create the consumer group on *stream* (idempotent)."""
        r = self._get_redis()
        try:
            r.xgroup_create(stream, group, id="0", mkstream=True)
            logger.info("Consumer group '%s' created on %s", group, stream)
        except redis.ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise

    def read_batch(
        self,
        stream: str,
        consumer_name: str,
        *,
        group: str = CONSUMER_GROUP,
        count: int = 10,
        block_ms: int = 2000,
    ) -> list[tuple[str, dict[str, str]]]:
        """Read a batch of new messages from a consumer group.

        Returns list of (entry_id, fields_dict) tuples; empty on error.
        """
        try:
            result = self._get_redis().xreadgroup(
                group,
                consumer_name,
                {stream: ">"},
                count=count,
                block=block_ms,
            )
        except Exception:
            logger.warning(
                "Bus read failed: stream=%s consumer=%s", stream, consumer_name,
                exc_info=True,
            )
            return []
        if not result:
            return []
        # result is [(stream_name, [(entry_id, fields), ...])]
        return result[0][1]

    def ack(self, stream: str, *entry_ids: str, group: str = CONSUMER_GROUP) -> int:
        """Acknowledge processed messages. Returns the number acknowledged."""
        if not entry_ids:
            return 0
        try:
            return self._get_redis().xack(stream, group, *entry_ids)
        except Exception:
            logger.warning(
                "Bus ack failed: stream=%s ids=%s", stream, entry_ids,
                exc_info=True,
            )
            return 0

    def ping(self) -> bool:
        try:
            return bool(self._get_redis().ping())
        except Exception:
            return False
