"""Tests for the redis-backed dose queue wrapper."""

from __future__ import annotations

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from careplan.integrations.dose_queue import DoseQueue, DoseQueueError, build_dose_queue
from careplan.models import Recurrence
from careplan.schemas.medication import DoseGenerationMessage

pytestmark = pytest.mark.asyncio


class _ListClient:
    def __init__(self, *, broken: bool = False) -> None:
        self.lists: dict[str, list[str]] = {}
        self.broken = broken

    async def rpush(self, name: str, value: str) -> int:
        if self.broken:
            raise RedisConnectionError("connection refused")
        self.lists.setdefault(name, []).append(value)
        return len(self.lists[name])

    async def blpop(self, names: list[str], timeout: float = 0):
        if self.broken:
            raise RedisConnectionError("connection refused")
        for name in names:
            if self.lists.get(name):
                return name, self.lists[name].pop(0)
        return None


def _message() -> DoseGenerationMessage:
    return DoseGenerationMessage(
        medication_id="med-1",
        care_recipient_id="67891",
        recurrence=Recurrence.DAILY,
        times_of_day=["08:00"],
        active=True,
    )


async def test_send_and_receive_round_trip_camel_case_json() -> None:
    client = _ListClient()
    queue = DoseQueue(client, "doses")

    await queue.send(_message())

    body = await queue.receive(timeout=0)
    assert body is not None
    assert '"medicationId":"med-1"' in body
    assert DoseGenerationMessage.model_validate_json(body) == _message()
    assert await queue.receive(timeout=0) is None


async def test_redis_errors_surface_as_queue_errors() -> None:
    queue = DoseQueue(_ListClient(broken=True), "doses")

    with pytest.raises(DoseQueueError):
        await queue.send(_message())
    with pytest.raises(DoseQueueError):
        await queue.receive(timeout=0)


async def test_build_dose_queue_requires_a_client() -> None:
    assert build_dose_queue(None) is None
    queue = build_dose_queue(_ListClient(), queue_name="custom")
    assert queue is not None
    assert queue.queue_name == "custom"
