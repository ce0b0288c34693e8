"""
PURPOSE: API router initialization and exports for TV Scanner.

Aggregates the HTTP routers into a single api_router; the WebSocket router is
included separately by the application factory.
"""

from fastapi import APIRouter

from tvscanner.api.routes_system import router as system_router
from tvscanner.api.routes_webhook import router as webhook_router

api_router = APIRouter()

api_router.include_router(webhook_router)
api_router.include_router(system_router)

__all__ = ["api_router"]
