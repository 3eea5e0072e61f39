"""Partition and sort key helpers for the single ``care_items`` table.

Every record owned by a care recipient lives in the partition
``CARE#<careRecipientId>``. Medications sort under ``MED#<medicationId>``;
dose occurrences sort under ``DOSE#<medicationId>#<dueAt>``.

``dueAt`` is always rendered as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC. The
fixed width and zone designator make lexicographic order equal
chronological order, which the dose range queries rely on.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import NamedTuple

PARTITION_PREFIX = "CARE#"
MEDICATION_PREFIX = "MED#"
DOSE_PREFIX = "DOSE#"
_SEPARATOR = "#"
_INSTANT_FORMAT = "%Y-%m-%dT%H:%M:%S"


class ItemKey(NamedTuple):
    """Composite primary key of a ``care_items`` row."""

    pk: str
    sk: str


class DoseIdentity(NamedTuple):
    """The triple that identifies exactly one dose occurrence."""

    care_recipient_id: str
    medication_id: str
    due_at: datetime


def _require_segment(value: str, label: str) -> str:
    if not value:
        raise ValueError(f"{label} must not be empty")
    if _SEPARATOR in value:
        raise ValueError(f"{label} must not contain '{_SEPARATOR}'")
    return value


def format_instant(value: datetime) -> str:
    """Render ``value`` in the canonical millisecond UTC form."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return f"{value.strftime(_INSTANT_FORMAT)}.{value.microsecond // 1000:03d}Z"


def parse_instant(raw: str) -> datetime:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def normalize_instant(value: datetime | str) -> str:
    """Return the canonical rendering of a datetime or ISO string."""
    if isinstance(value, str):
        value = parse_instant(value)
    return format_instant(value)


def partition_key(care_recipient_id: str) -> str:
    if not care_recipient_id:
        raise ValueError("careRecipientId must not be empty")
    return f"{PARTITION_PREFIX}{care_recipient_id}"


def care_recipient_from_partition(pk: str) -> str:
    if not pk.startswith(PARTITION_PREFIX):
        raise ValueError(f"Not a care recipient partition key: {pk!r}")
    return pk[len(PARTITION_PREFIX):]


def medication_key(care_recipient_id: str, medication_id: str) -> ItemKey:
    return ItemKey(
        partition_key(care_recipient_id),
        f"{MEDICATION_PREFIX}{_require_segment(medication_id, 'medicationId')}",
    )


def dose_sort_prefix(medication_id: str | None = None) -> str:
    """Sort-key prefix for all doses, or for the doses of one medication."""
    if medication_id is None:
        return DOSE_PREFIX
    return f"{DOSE_PREFIX}{_require_segment(medication_id, 'medicationId')}{_SEPARATOR}"


def dose_key(
    care_recipient_id: str, medication_id: str, due_at: datetime | str
) -> ItemKey:
    return ItemKey(
        partition_key(care_recipient_id),
        f"{dose_sort_prefix(medication_id)}{normalize_instant(due_at)}",
    )


def parse_dose_key(key: ItemKey) -> DoseIdentity:
    """Recover the identity triple from a dose key."""
    if not key.sk.startswith(DOSE_PREFIX):
        raise ValueError(f"Not a dose sort key: {key.sk!r}")
    medication_id, sep, due_at = key.sk[len(DOSE_PREFIX):].partition(_SEPARATOR)
    if not sep or not medication_id or not due_at:
        raise ValueError(f"Malformed dose sort key: {key.sk!r}")
    return DoseIdentity(
        care_recipient_from_partition(key.pk),
        medication_id,
        parse_instant(due_at),
    )


__all__ = [
    "DOSE_PREFIX",
    "DoseIdentity",
    "ItemKey",
    "MEDICATION_PREFIX",
    "PARTITION_PREFIX",
    "care_recipient_from_partition",
    "dose_key",
    "dose_sort_prefix",
    "format_instant",
    "medication_key",
    "normalize_instant",
    "parse_dose_key",
    "parse_instant",
    "partition_key",
]
