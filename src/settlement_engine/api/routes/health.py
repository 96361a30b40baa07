"""Health checks for the settlement service.

``/health`` reports on the settlement database and the credits still waiting
for manual reconciliation. ``/ready`` fails while the database is unreachable
so the load balancer stops routing payments here.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from settlement_engine.api.dependencies import DbSession
from settlement_engine.models import CreditReconciliation

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str
    payment_provider: str
    open_reconciliations: int | None = None


def _open_reconciliations(db: DbSession) -> int | None:
    """Count uncredited confirmed payments, or None if the database is down."""
    try:
        return db.scalar(
            select(func.count())
            .select_from(CreditReconciliation)
            .where(CreditReconciliation.status == "open")
        )
    except SQLAlchemyError:
        logger.exception("Settlement database health check failed")
        return None


@router.get("/health", response_model=HealthResponse)
def health_check(request: Request, db: DbSession) -> HealthResponse:
    open_count = _open_reconciliations(db)
    if open_count is None:
        overall = "degraded"
    elif open_count:
        # Payments were captured but curators were not credited.
        overall = "needs_attention"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc),
        database="unhealthy" if open_count is None else "healthy",
        payment_provider=request.app.state.gateway.provider_name,
        open_reconciliations=open_count,
    )


@router.get("/ready")
def readiness_check(db: DbSession) -> dict[str, str]:
    if _open_reconciliations(db) is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Settlement database unavailable",
        )
    return {"status": "ready"}


@router.get("/live")
def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
