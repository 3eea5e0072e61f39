"""Versioned API router."""

from fastapi import APIRouter

from . import doses, health, medications, telemetry

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(medications.router, tags=["medications"])
router.include_router(doses.router, tags=["doses"])
router.include_router(telemetry.router)
