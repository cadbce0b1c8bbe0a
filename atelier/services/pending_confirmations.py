# ==== PENDING CONFIRMATION STORES ==== #

"""
Stores mapping an outbound confirmation request to the order it asks about.

A mapping is created when the ``order_ready`` template is sent and consumed
exactly once when the customer's reply references that message. The default
store is process-local and unbounded; the Redis store survives restarts and
expires abandoned mappings.
"""

from typing import Dict, Optional

import redis.asyncio as redis

from atelier.observability.metrics import pending_confirmations_gauge
from atelier.observability.tracing import get_tracer


tracer = get_tracer(__name__)


class InMemoryPendingConfirmations:
    """Process-local message id to order number map."""

    def __init__(self):
        self._pending: Dict[str, str] = {}

    async def remember(self, message_id: str, order_name: str) -> None:
        self._pending[message_id] = order_name
        pending_confirmations_gauge.set(len(self._pending))

    async def consume(self, message_id: str) -> Optional[str]:
        order_name = self._pending.pop(message_id, None)
        pending_confirmations_gauge.set(len(self._pending))
        return order_name

    def __len__(self) -> int:
        return len(self._pending)


class RedisPendingConfirmations:
    """
    Redis-backed pending confirmations with a TTL.

    ``GETDEL`` makes the read and the delete one atomic step, so two
    concurrent replies can never both consume the same mapping.
    """

    def __init__(self, client: redis.Redis, ttl_seconds: int, key_prefix: str = "pending_confirmation"):
        self._redis = client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    def _key(self, message_id: str) -> str:
        return f"{self.key_prefix}:{message_id}"

    async def remember(self, message_id: str, order_name: str) -> None:
        with tracer.start_as_current_span("pending_confirmation_remember") as span:
            span.set_attribute("message_id", message_id)
            await self._redis.set(self._key(message_id), order_name, ex=self.ttl_seconds)

    async def consume(self, message_id: str) -> Optional[str]:
        with tracer.start_as_current_span("pending_confirmation_consume") as span:
            span.set_attribute("message_id", message_id)
            order_name = await self._redis.getdel(self._key(message_id))
            span.set_attribute("hit", order_name is not None)
            return order_name
