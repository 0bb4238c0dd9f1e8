"""Authorization checks and role/permission administration."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from fleet_engine.api.dependencies import Core, DbSession, UserId
from fleet_engine.api.schemas import AuthorizeResponse, ErrorResponse, GrantResponse

router = APIRouter(tags=["authorization"])


@router.get("/authorize", response_model=AuthorizeResponse)
def authorize(
    core: Core,
    user_id: UserId,
    permission: Annotated[str, Query(min_length=1)],
) -> AuthorizeResponse:
    """Check whether the calling user holds ``permission``. Never errors on unknown codes."""
    return AuthorizeResponse(
        user_id=user_id,
        permission=permission,
        granted=core.authorize(user_id, permission),
    )


@router.put(
    "/users/{user_id}/roles/{role_id}",
    response_model=GrantResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def grant_role(
    db: DbSession,
    core: Core,
    actor_id: UserId,
    user_id: Annotated[UUID, Path()],
    role_id: Annotated[UUID, Path()],
) -> GrantResponse:
    result = core.grant_role(user_id, role_id, actor_id=actor_id).unwrap()
    db.commit()
    return GrantResponse(changed=result.changed, row_id=result.row_id)


@router.delete(
    "/users/{user_id}/roles/{role_id}",
    response_model=GrantResponse,
    responses={403: {"model": ErrorResponse}},
)
def revoke_role(
    db: DbSession,
    core: Core,
    actor_id: UserId,
    user_id: Annotated[UUID, Path()],
    role_id: Annotated[UUID, Path()],
) -> GrantResponse:
    result = core.revoke_role(user_id, role_id, actor_id=actor_id).unwrap()
    db.commit()
    return GrantResponse(changed=result.changed, row_id=result.row_id)


@router.put(
    "/roles/{role_id}/permissions/{permission_id}",
    response_model=GrantResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def grant_permission(
    db: DbSession,
    core: Core,
    actor_id: UserId,
    role_id: Annotated[UUID, Path()],
    permission_id: Annotated[UUID, Path()],
) -> GrantResponse:
    result = core.grant_permission(role_id, permission_id, actor_id=actor_id).unwrap()
    db.commit()
    return GrantResponse(changed=result.changed, row_id=result.row_id)


@router.delete(
    "/roles/{role_id}/permissions/{permission_id}",
    response_model=GrantResponse,
    responses={403: {"model": ErrorResponse}},
)
def revoke_permission(
    db: DbSession,
    core: Core,
    actor_id: UserId,
    role_id: Annotated[UUID, Path()],
    permission_id: Annotated[UUID, Path()],
) -> GrantResponse:
    result = core.revoke_permission(role_id, permission_id, actor_id=actor_id).unwrap()
    db.commit()
    return GrantResponse(changed=result.changed, row_id=result.row_id)
