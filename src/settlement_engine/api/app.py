"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from settlement_engine import __version__
from settlement_engine.api.routes import health_router, settlement_router
from settlement_engine.config import SettlementConfig, get_settings
from settlement_engine.database import dispose_db, init_db
from settlement_engine.errors import SettlementError
from settlement_engine.events.emitter import EventEmitter
from settlement_engine.providers.base import PaymentGateway
from settlement_engine.providers.paypal import PayPalGateway

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    close = getattr(app.state.gateway, "close", None)
    if close is not None:
        close()
    dispose_db()


def create_app(
    gateway: PaymentGateway | None = None,
    *,
    settlement_config: SettlementConfig | None = None,
    event_emitter: EventEmitter | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Settlement Engine API",
        description="Submission payment capture, curator balances and payouts",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.gateway = gateway or PayPalGateway.from_settings(settings)
    app.state.settlement_config = settlement_config or SettlementConfig.from_settings(settings)
    app.state.event_emitter = event_emitter or EventEmitter()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(SettlementError)
    async def settlement_exception_handler(
        request: Request, exc: SettlementError
    ) -> JSONResponse:
        """Map settlement errors to their status and code."""
        if exc.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.http_status,
            content={"detail": _client_detail(exc), "code": exc.code},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(settlement_router, prefix="/api/v1")

    return app


def _client_detail(exc: SettlementError) -> str:
    """Provider request errors are shown as a retry-safe message, never the raw payload."""
    user_message = getattr(exc, "user_message", None)
    if isinstance(user_message, str):
        return user_message
    return exc.message


# Default app instance for uvicorn
app = create_app()
