"""FastAPI dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from fleet_engine.config import get_settings
from fleet_engine.core import CoreConfig, FleetCore
from fleet_engine.database import init_db
from fleet_engine.events import EventEmitter
from fleet_engine.runtime import Clock, SystemClock


def get_db_session() -> Generator[Session, None, None]:
    """Get database session dependency. Routes commit; failures roll back."""
    _, factory = init_db()
    with factory() as session:
        try:
            yield session
        except Exception:
            session.rollback()
            raise


def get_clock() -> Clock:
    return SystemClock()


def get_event_emitter(request: Request) -> EventEmitter | None:
    return getattr(request.app.state, "event_emitter", None)


def get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> UUID:
    """Extract the acting user ID from header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID header is required",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db_session)]
UserId = Annotated[UUID, Depends(get_user_id)]


def get_core(
    db: DbSession,
    clock: Annotated[Clock, Depends(get_clock)],
    emitter: Annotated[EventEmitter | None, Depends(get_event_emitter)],
) -> FleetCore:
    return FleetCore(
        db,
        config=CoreConfig.from_settings(get_settings()),
        clock=clock,
        event_emitter=emitter,
    )


Core = Annotated[FleetCore, Depends(get_core)]
