"""Tests for the dose lifecycle service."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from careplan.core.clock import ScheduleClock
from careplan.db import care_table
from careplan.db.keys import dose_key, format_instant, medication_key
from careplan.db.session import get_sessionmaker
from careplan.models import CareItem, DoseStatus, RecordType, Recurrence
from careplan.services import dose_service, telemetry_buffer

pytestmark = pytest.mark.asyncio

RECIPIENT = "67891"
CREATED = datetime(2024, 12, 25, 12, tzinfo=UTC)


def _medication(medication_id: str = "med-1", **overrides) -> CareItem:
    key = medication_key(RECIPIENT, medication_id)
    values = dict(
        pk=key.pk,
        sk=key.sk,
        record_type=RecordType.MEDICATION,
        care_recipient_id=RECIPIENT,
        medication_id=medication_id,
        name="Ibuprofen",
        dosage="200mg",
        notes="Take with food",
        recurrence=Recurrence.DAILY,
        times_of_day=["08:00", "20:00"],
        days_of_week=None,
        active=True,
        created_at=CREATED,
        updated_at=CREATED,
    )
    values.update(overrides)
    return CareItem(**values)


def _dose(
    due_at: datetime,
    medication_id: str = "med-1",
    status: DoseStatus = DoseStatus.UPCOMING,
) -> CareItem:
    key = dose_key(RECIPIENT, medication_id, due_at)
    return CareItem(
        pk=key.pk,
        sk=key.sk,
        record_type=RecordType.DOSE,
        care_recipient_id=RECIPIENT,
        medication_id=medication_id,
        due_at=format_instant(due_at),
        status=status,
        taken_at=due_at if status == DoseStatus.TAKEN else None,
        created_at=CREATED,
        updated_at=CREATED,
    )


async def _seed(session, *items: CareItem) -> None:
    await care_table.batch_put_items(session, list(items))


async def test_no_upcoming_doses_skips_medication_lookup(
    session, clock: ScheduleClock, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls = 0

    async def _spy(*args, **kwargs):
        nonlocal calls
        calls += 1
        return []

    monkeypatch.setattr(care_table, "batch_get_items", _spy)

    assert await dose_service.list_upcoming_doses(session, RECIPIENT, clock=clock) == []
    assert calls == 0


async def test_upcoming_doses_share_one_medication_lookup(
    session, clock: ScheduleClock, monkeypatch: pytest.MonkeyPatch
) -> None:
    morning = datetime(2025, 12, 1, 8, tzinfo=UTC)
    evening = datetime(2025, 12, 1, 20, tzinfo=UTC)
    await _seed(session, _medication(), _dose(morning), _dose(evening))

    lookups: list[list] = []
    real_batch_get = care_table.batch_get_items

    async def _spy(db_session, keys, **kwargs):
        keys = list(keys)
        lookups.append(keys)
        return await real_batch_get(db_session, keys, **kwargs)

    monkeypatch.setattr(care_table, "batch_get_items", _spy)

    result = await dose_service.list_upcoming_doses(session, RECIPIENT, clock=clock)

    assert len(lookups) == 1
    assert lookups[0] == [medication_key(RECIPIENT, "med-1")]
    assert [dose.dose_id for dose in result] == [
        "DOSE#med-1#2025-12-01T08:00:00.000Z",
        "DOSE#med-1#2025-12-01T20:00:00.000Z",
    ]
    assert result[0].medication == result[1].medication
    assert result[0].medication.name == "Ibuprofen"
    assert result[1].medication.dosage == "200mg"
    assert result[0].medication.recurrence == Recurrence.DAILY


async def test_upcoming_excludes_past_and_administered_doses(
    session, clock: ScheduleClock
) -> None:
    await _seed(
        session,
        _medication(),
        _dose(datetime(2024, 12, 31, 20, tzinfo=UTC)),
        _dose(datetime(2025, 1, 1, 8, tzinfo=UTC), status=DoseStatus.TAKEN),
        _dose(datetime(2025, 1, 1, 20, tzinfo=UTC), status=DoseStatus.MISSED),
        _dose(datetime(2025, 1, 2, 8, tzinfo=UTC)),
    )

    result = await dose_service.list_upcoming_doses(session, RECIPIENT, clock=clock)

    assert [dose.due_at for dose in result] == ["2025-01-02T08:00:00.000Z"]


async def test_doses_without_medication_are_dropped_and_counted(
    session, clock: ScheduleClock
) -> None:
    await _seed(
        session,
        _medication(),
        _dose(datetime(2025, 1, 2, 8, tzinfo=UTC)),
        _dose(datetime(2025, 1, 2, 9, tzinfo=UTC), medication_id="med-gone"),
        _dose(datetime(2025, 1, 3, 9, tzinfo=UTC), medication_id="med-gone"),
    )

    result = await dose_service.list_upcoming_doses(session, RECIPIENT, clock=clock)

    assert [dose.medication_id for dose in result] == ["med-1"]
    assert telemetry_buffer.totals() == {telemetry_buffer.JOIN_DROPPED: 2}
    event = telemetry_buffer.snapshot()[-1]
    assert event["care_recipient_id"] == RECIPIENT


async def test_mark_dose_taken_transitions_once(session, clock: ScheduleClock) -> None:
    due_at = datetime(2025, 1, 1, 8, tzinfo=UTC)
    await _seed(session, _medication(), _dose(due_at))

    dose = await dose_service.mark_dose_taken(
        session,
        care_recipient_id=RECIPIENT,
        medication_id="med-1",
        due_at=due_at,
        clock=clock,
    )

    assert dose is not None
    assert dose.status == DoseStatus.TAKEN
    assert dose.taken_at.replace(tzinfo=UTC) == clock.now()
    assert dose.updated_at.replace(tzinfo=UTC) == clock.now()

    again = await dose_service.mark_dose_taken(
        session,
        care_recipient_id=RECIPIENT,
        medication_id="med-1",
        due_at=due_at,
        clock=clock,
    )
    assert again is None


async def test_mark_dose_taken_accepts_equivalent_iso_strings(
    session, clock: ScheduleClock
) -> None:
    await _seed(session, _dose(datetime(2025, 1, 1, 8, tzinfo=UTC)))

    dose = await dose_service.mark_dose_taken(
        session,
        care_recipient_id=RECIPIENT,
        medication_id="med-1",
        due_at="2025-01-01T09:00:00+01:00",
        clock=clock,
    )
    assert dose is not None
    assert dose.due_at == "2025-01-01T08:00:00.000Z"


async def test_mark_missing_dose_returns_none(session, clock: ScheduleClock) -> None:
    result = await dose_service.mark_dose_taken(
        session,
        care_recipient_id=RECIPIENT,
        medication_id="med-1",
        due_at=datetime(2025, 1, 1, 8, tzinfo=UTC),
        clock=clock,
    )
    assert result is None


async def test_concurrent_mark_taken_has_a_single_winner(
    session, db_url: str, clock: ScheduleClock
) -> None:
    due_at = datetime(2025, 1, 1, 8, tzinfo=UTC)
    await _seed(session, _medication(), _dose(due_at))
    sessionmaker = get_sessionmaker(db_url)

    async def _attempt():
        async with sessionmaker() as own_session:
            return await dose_service.mark_dose_taken(
                own_session,
                care_recipient_id=RECIPIENT,
                medication_id="med-1",
                due_at=due_at,
                clock=clock,
            )

    results = await asyncio.gather(*(_attempt() for _ in range(5)))

    winners = [result for result in results if result is not None]
    assert len(winners) == 1
    assert winners[0].status == DoseStatus.TAKEN
    assert results.count(None) == 4
