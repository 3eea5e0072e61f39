"""Operational event endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from careplan.services import telemetry_buffer

router = APIRouter(prefix="/telemetry", tags=["telemetry"])


@router.get("")
async def list_telemetry(
    limit: int = Query(200, ge=0, le=1000),
) -> dict[str, Any]:
    """Return recent operational events and running totals."""
    return {
        "events": telemetry_buffer.snapshot(limit),
        "totals": telemetry_buffer.totals(),
    }
