"""FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager

from asgi_correlation_id import CorrelationIdFilter, CorrelationIdMiddleware
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from secure import Secure

from careplan.api import api_router
from careplan.core.config import get_settings
from careplan.db.session import dispose_engine, get_engine
from careplan.integrations.dose_queue import build_dose_queue, create_redis_client

logger = logging.getLogger(__name__)

settings = get_settings()

_ALLOWED_ORIGINS = [origin for origin in settings.cors_allow_origins if origin]


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_engine()
    redis_client = None
    try:
        redis_client = create_redis_client()
        app.state.dose_queue = build_dose_queue(redis_client)
    except Exception:  # pragma: no cover - queue startup is best effort
        logger.exception("Failed to initialize dose queue")
        app.state.dose_queue = None
    if app.state.dose_queue is None:
        logger.warning("Dose queue disabled; generation fallback is unavailable")
    try:
        yield
    finally:
        app.state.dose_queue = None
        if redis_client is not None:
            try:
                await redis_client.aclose()
            except Exception:
                logger.exception("Failed to close redis client")
        await dispose_engine()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_ALLOWED_ORIGINS,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(CorrelationIdMiddleware, header_name="X-Request-ID")

_secure_headers = Secure()


@app.middleware("http")
async def _apply_security_headers(request, call_next):
    response = await call_next(request)
    _secure_headers.set_headers(response)
    return response


for _logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error", ""):
    _logger = logging.getLogger(_logger_name)
    if not any(isinstance(flt, CorrelationIdFilter) for flt in _logger.filters):
        _logger.addFilter(CorrelationIdFilter(uuid_length=32))

app.include_router(api_router)


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": settings.app_name}
