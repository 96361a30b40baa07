"""API routes."""

from settlement_engine.api.routes.health import router as health_router
from settlement_engine.api.routes.settlement import router as settlement_router

__all__ = ["settlement_router", "health_router"]
