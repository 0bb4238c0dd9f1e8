"""Trip lifecycle endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from fleet_engine.api.dependencies import Core, DbSession, UserId
from fleet_engine.api.schemas import ErrorResponse, TripResponse, TripTransitionRequest

router = APIRouter(prefix="/trips", tags=["trips"])


@router.post(
    "/{trip_id}/transition",
    response_model=TripResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
def transition_trip(
    db: DbSession,
    core: Core,
    actor_id: UserId,
    trip_id: Annotated[UUID, Path()],
    payload: TripTransitionRequest,
) -> TripResponse:
    """Move a trip to ``target_status``. Guards and permission are checked by the core."""
    trip = core.transition_trip(trip_id, payload.target_status, actor_id=actor_id).unwrap()
    db.commit()
    return TripResponse.model_validate(trip)
