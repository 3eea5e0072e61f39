"""Redis-backed queue for dose generation messages.

Delivery is at-least-once with no ordering or dedup guarantee: the worker
pushes a message back when generation fails, so a message may be handled
more than once.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import redis.asyncio as redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from careplan.core.config import get_settings

if TYPE_CHECKING:  # pragma: no cover - typing only imports
    from careplan.schemas.medication import DoseGenerationMessage

logger = logging.getLogger(__name__)


class DoseQueueError(RuntimeError):
    """Raised when the queue cannot be reached."""


class DoseQueue:
    """Thin wrapper over a redis list used as a work queue."""

    def __init__(self, client: redis.Redis, queue_name: str) -> None:
        if not queue_name:
            raise DoseQueueError("Dose queue name is not configured")
        self._client = client
        self.queue_name = queue_name

    async def send(self, message: "DoseGenerationMessage") -> None:
        """Append ``message`` to the tail of the queue."""
        await self.send_raw(message.to_json())
        logger.debug(
            "Queued dose generation for medication %s", message.medication_id
        )

    async def send_raw(self, body: str) -> None:
        try:
            await self._client.rpush(self.queue_name, body)
        except RedisError as exc:
            raise DoseQueueError(f"Failed to enqueue on {self.queue_name}") from exc

    async def receive(self, timeout: float = 5.0) -> str | None:
        """Pop the next message body, waiting up to ``timeout`` seconds."""
        try:
            popped = await self._client.blpop([self.queue_name], timeout=timeout)
        except RedisError as exc:
            raise DoseQueueError(f"Failed to read from {self.queue_name}") from exc
        if popped is None:
            return None
        _, body = popped
        if isinstance(body, bytes):
            return body.decode("utf-8")
        return body


def create_redis_client(url: str | None = None) -> redis.Redis | None:
    """Create the process-wide redis client, or ``None`` when not configured."""
    settings = get_settings()
    redis_url = url or settings.redis_url
    if not redis_url:
        return None
    return redis.from_url(redis_url, encoding="utf-8", decode_responses=True)


def build_dose_queue(client: redis.Redis | None, **overrides: str) -> DoseQueue | None:
    """Factory that honours application settings."""
    if client is None:
        return None
    settings = get_settings()
    return DoseQueue(
        client, overrides.get("queue_name") or settings.dose_queue_name
    )
