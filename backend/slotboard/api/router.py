"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from slotboard.api.routes import bookings, diagnostics, events

api_router = APIRouter(prefix="/api")
api_router.include_router(events.router)
api_router.include_router(bookings.router)
api_router.include_router(diagnostics.router)
