"""Main API router combining all v1 route modules under ``/api/v1``."""

from __future__ import annotations

from fastapi import APIRouter

from safeguard.api.v1 import analytics, contacts, health, settings, sos

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(sos.router)
api_router.include_router(contacts.router)
api_router.include_router(settings.router)
api_router.include_router(analytics.router)
api_router.include_router(health.router)
