"""Health and readiness endpoints.

An instance is only useful once its role catalog is seeded: without it
every permission check fails closed. ``/ready`` answers 503 until the
database answers and every catalog role exists.
"""

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleet_engine.api.dependencies import DbSession, get_clock
from fleet_engine.models import Role
from fleet_engine.runtime import Clock
from fleet_engine.services.catalog import RoleCode

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    checked_at: datetime
    database: str
    catalog: str
    catalog_roles: int


def _catalog_roles(db: Session) -> int | None:
    """Number of catalog roles stored, or None when the database is unreachable."""
    codes = [code.value for code in RoleCode]
    try:
        return db.scalar(select(func.count()).select_from(Role).where(Role.code.in_(codes)))
    except SQLAlchemyError:
        logger.warning("Database check failed", exc_info=True)
        db.rollback()
        return None


@router.get("/health", response_model=HealthResponse)
def health_check(
    db: DbSession, clock: Annotated[Clock, Depends(get_clock)]
) -> HealthResponse:
    roles = _catalog_roles(db)
    seeded = roles == len(RoleCode)
    return HealthResponse(
        status="healthy" if seeded else "degraded",
        checked_at=clock.now(),
        database="unhealthy" if roles is None else "healthy",
        catalog="seeded" if seeded else "incomplete",
        catalog_roles=roles or 0,
    )


@router.get("/ready", responses={503: {"description": "Database down or catalog not seeded"}})
def readiness_check(db: DbSession, response: Response) -> dict[str, str]:
    if _catalog_roles(db) != len(RoleCode):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready"}
    return {"status": "ready"}


@router.get("/live")
def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
