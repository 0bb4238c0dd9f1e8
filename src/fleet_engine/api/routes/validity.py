"""Temporal validity endpoint."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from fleet_engine.api.dependencies import Core, UserId
from fleet_engine.api.schemas import ErrorResponse, ValidityResponse

router = APIRouter(prefix="/validity", tags=["validity"])


@router.get(
    "/{entity_kind}/{entity_id}",
    response_model=ValidityResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def check_validity(
    core: Core,
    actor_id: UserId,
    entity_kind: Annotated[str, Path()],
    entity_id: Annotated[UUID, Path()],
) -> ValidityResponse:
    report = core.check_validity(entity_id, entity_kind, actor_id=actor_id).unwrap()
    return ValidityResponse(entity_kind=entity_kind, entity_id=entity_id, **report.to_dict())
