"""Common API dependencies."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from careplan.core.clock import ScheduleClock, get_schedule_clock
from careplan.db.session import get_session
from careplan.integrations.dose_queue import DoseQueue


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async for session in get_session():
        yield session


def get_dose_queue(request: Request) -> DoseQueue | None:
    """Return the dose queue created by the application lifespan, if any."""
    return getattr(request.app.state, "dose_queue", None)


def get_clock() -> ScheduleClock:
    """Return the scheduling clock for the current request."""
    return get_schedule_clock()
