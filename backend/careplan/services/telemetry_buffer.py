"""In-memory buffer of recent operational events.

Services record events that operators should be able to see without
grepping logs, such as upcoming-dose joins that dropped occurrences or a
dose-generation fallback that could not reach the queue.
"""

from __future__ import annotations

from collections import Counter, deque
from datetime import UTC, datetime
from typing import Any, Deque

_MAX_EVENTS = 1000
_BUFFER: Deque[dict[str, Any]] = deque(maxlen=_MAX_EVENTS)
_TOTALS: Counter[str] = Counter()

JOIN_DROPPED = "dose.join_dropped"
GENERATION_FALLBACK = "dose.generation_fallback"
QUEUE_SEND_FAILED = "dose.queue_send_failed"


def record(event_type: str, *, count: int = 1, **fields: Any) -> None:
    """Store one event and add ``count`` to its running total."""
    event = {
        "type": event_type,
        "count": count,
        "ts": datetime.now(UTC).isoformat(),
        **fields,
    }
    _BUFFER.append(event)
    _TOTALS[event_type] += count


def snapshot(limit: int = 200) -> list[dict[str, Any]]:
    """Return up to ``limit`` most recent events."""
    if limit <= 0:
        return []
    if limit >= len(_BUFFER):
        return list(_BUFFER)
    return list(_BUFFER)[-limit:]


def totals() -> dict[str, int]:
    """Return the running count per event type since start-up."""
    return dict(_TOTALS)


def clear() -> None:
    """Clear the buffer and totals (mainly for tests)."""
    _BUFFER.clear()
    _TOTALS.clear()
