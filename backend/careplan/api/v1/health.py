"""Health check endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request

from careplan.core.config import get_settings

router = APIRouter()


@router.get("", summary="Service health status")
async def healthcheck(request: Request) -> dict[str, str]:
    """Return application health metadata."""
    settings = get_settings()
    queue = getattr(request.app.state, "dose_queue", None)
    return {
        "status": "ok",
        "service": settings.app_name,
        "timestamp": datetime.now(UTC).isoformat(),
        "environment": settings.app_env,
        "scheduleTimezone": settings.schedule_timezone,
        "doseQueue": "configured" if queue is not None else "disabled",
    }
