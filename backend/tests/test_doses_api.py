"""Dose API tests."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio

RECIPIENT = "67891"
MEDICATIONS = f"/api/v1/care-recipients/{RECIPIENT}/medications"
DOSES = f"/api/v1/care-recipients/{RECIPIENT}/doses"


async def _create_daily(client: AsyncClient) -> str:
    response = await client.post(
        MEDICATIONS,
        json={
            "name": "Ibuprofen",
            "dosage": "200mg",
            "notes": "Take with food",
            "recurrence": "DAILY",
            "timesOfDay": ["08:00", "20:00"],
        },
    )
    assert response.status_code == 201
    return response.json()["medication"]["medicationId"]


async def test_upcoming_doses_are_joined_with_medication(client: AsyncClient) -> None:
    medication_id = await _create_daily(client)

    response = await client.get(f"{DOSES}/upcoming")

    assert response.status_code == 200
    doses = response.json()
    assert len(doses) == 14
    first = doses[0]
    assert first["doseId"] == f"DOSE#{medication_id}#2025-01-01T08:00:00.000Z"
    assert first["medicationId"] == medication_id
    assert first["careRecipientId"] == RECIPIENT
    assert first["dueAt"] == "2025-01-01T08:00:00.000Z"
    assert first["status"] == "UPCOMING"
    assert first["medication"] == {
        "name": "Ibuprofen",
        "dosage": "200mg",
        "recurrence": "DAILY",
        "notes": "Take with food",
    }


async def test_upcoming_doses_for_unknown_recipient_is_empty(client: AsyncClient) -> None:
    response = await client.get("/api/v1/care-recipients/nobody/doses/upcoming")
    assert response.status_code == 200
    assert response.json() == []


async def test_mark_dose_taken_once(client: AsyncClient) -> None:
    medication_id = await _create_daily(client)
    body = {"medicationId": medication_id, "dueAt": "2025-01-01T08:00:00.000Z"}

    response = await client.post(f"{DOSES}/taken", json=body)

    assert response.status_code == 200
    payload = response.json()
    assert payload["message"] == "Dose marked as taken"
    assert payload["dose"]["status"] == "TAKEN"
    assert payload["dose"]["dueAt"] == "2025-01-01T08:00:00.000Z"
    assert payload["dose"]["takenAt"].startswith("2025-01-01T00:00:00")

    again = await client.post(f"{DOSES}/taken", json=body)
    assert again.status_code == 404
    assert again.json()["detail"] == (
        "Dose not found or already taken. Ensure the dose exists and status is UPCOMING."
    )

    upcoming = await client.get(f"{DOSES}/upcoming")
    assert len(upcoming.json()) == 13


async def test_mark_dose_taken_accepts_offset_due_at(client: AsyncClient) -> None:
    medication_id = await _create_daily(client)

    response = await client.post(
        f"{DOSES}/taken",
        json={"medicationId": medication_id, "dueAt": "2025-01-01T15:00:00-05:00"},
    )

    assert response.status_code == 200
    assert response.json()["dose"]["dueAt"] == "2025-01-01T20:00:00.000Z"


async def test_mark_unknown_dose_is_not_found(client: AsyncClient) -> None:
    response = await client.post(
        f"{DOSES}/taken",
        json={"medicationId": "missing", "dueAt": "2025-01-01T08:00:00Z"},
    )
    assert response.status_code == 404


async def test_mark_dose_taken_validates_body(client: AsyncClient) -> None:
    missing_due = await client.post(f"{DOSES}/taken", json={"medicationId": "med-1"})
    assert missing_due.status_code == 422

    bad_due = await client.post(
        f"{DOSES}/taken", json={"medicationId": "med-1", "dueAt": "tomorrow"}
    )
    assert bad_due.status_code == 422

    invalid_id = await client.post(
        f"{DOSES}/taken", json={"medicationId": "med#1", "dueAt": "2025-01-01T08:00:00Z"}
    )
    assert invalid_id.status_code == 400

    mismatch = await client.post(
        f"{DOSES}/taken",
        json={
            "medicationId": "med-1",
            "dueAt": "2025-01-01T08:00:00Z",
            "careRecipientId": "someone-else",
        },
    )
    assert mismatch.status_code == 400
