"""FastAPI dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from settlement_engine.config import SettlementConfig
from settlement_engine.database import init_db
from settlement_engine.events.emitter import EventEmitter
from settlement_engine.providers.base import PaymentGateway
from settlement_engine.services.settlement import SettlementService


def get_db_session() -> Generator[Session, None, None]:
    """Get database session dependency."""
    _, factory = init_db()
    with factory() as session:
        try:
            yield session
        finally:
            session.close()


def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract the authenticated user ID from header.

    Authentication happens upstream; the gateway forwards the user id.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


def get_settlement_config(request: Request) -> SettlementConfig:
    return request.app.state.settlement_config


def get_event_emitter(request: Request) -> EventEmitter:
    return request.app.state.event_emitter


def get_settlement_service(
    db: Annotated[Session, Depends(get_db_session)],
    gateway: Annotated[PaymentGateway, Depends(get_gateway)],
    config: Annotated[SettlementConfig, Depends(get_settlement_config)],
    emitter: Annotated[EventEmitter, Depends(get_event_emitter)],
) -> SettlementService:
    return SettlementService(db, gateway, config, event_emitter=emitter)


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db_session)]
CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]
Settlement = Annotated[SettlementService, Depends(get_settlement_service)]
