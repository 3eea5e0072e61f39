"""Integration shortcuts."""

from .dose_queue import (
    DoseQueue,
    DoseQueueError,
    build_dose_queue,
    create_redis_client,
)

__all__ = [
    "DoseQueue",
    "DoseQueueError",
    "build_dose_queue",
    "create_redis_client",
]
