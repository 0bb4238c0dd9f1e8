"""Role-based permission resolution.

Authorization is the conjunction of two checks, in this order:

1. the account is in good standing (``status == "active"``), and
2. some role assigned to the user carries the permission.

Resolution is side-effect free. Unknown or malformed permission codes
resolve to False, the same as a missing grant.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_engine.models import Permission, Role, RolePermission, User, UserRole
from fleet_engine.services.catalog import PermissionCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermissionSnapshot:
    """Point-in-time copy of the role/permission graph.

    Holds plain rows; nothing here touches the database.
    """

    roles: tuple[Role, ...] = ()
    permissions: tuple[Permission, ...] = ()
    user_roles: tuple[UserRole, ...] = ()
    role_permissions: tuple[RolePermission, ...] = ()
    _codes_by_permission: dict[UUID, str] = field(init=False, repr=False, compare=False)
    _role_ids: frozenset[UUID] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_codes_by_permission", {p.id: p.code for p in self.permissions}
        )
        object.__setattr__(self, "_role_ids", frozenset(r.id for r in self.roles))

    def role_ids_for(self, user_id: UUID) -> set[UUID]:
        return {
            ur.role_id
            for ur in self.user_roles
            if ur.user_id == user_id and ur.role_id in self._role_ids
        }

    def granted_codes(self, user_id: UUID) -> frozenset[str]:
        """Permission codes reachable through the user's roles, ignoring account status."""
        role_ids = self.role_ids_for(user_id)
        if not role_ids:
            return frozenset()
        return frozenset(
            self._codes_by_permission[rp.permission_id]
            for rp in self.role_permissions
            if rp.role_id in role_ids and rp.permission_id in self._codes_by_permission
        )

    def has_permission(
        self, user: User, permission_code: object, as_of: datetime | None = None
    ) -> bool:
        """Check whether ``user`` holds ``permission_code``.

        ``as_of`` names the instant the snapshot represents. Role
        assignments carry no validity window, so it does not filter rows.
        """
        code = PermissionCode.parse(permission_code)
        if code is None:
            return False
        if user is None or not user.is_active:
            return False
        return code.value in self.granted_codes(user.id)


class PermissionResolver:
    """Loads the slice of the role graph relevant to one user and resolves against it."""

    def __init__(self, session: Session):
        self.session = session

    def snapshot_for(self, user_id: UUID) -> PermissionSnapshot:
        user_roles = tuple(self.session.scalars(select(UserRole).where(UserRole.user_id == user_id)))
        role_ids = {ur.role_id for ur in user_roles}
        if not role_ids:
            return PermissionSnapshot(user_roles=user_roles)

        roles = tuple(self.session.scalars(select(Role).where(Role.id.in_(role_ids))))
        role_permissions = tuple(
            self.session.scalars(select(RolePermission).where(RolePermission.role_id.in_(role_ids)))
        )
        permission_ids = {rp.permission_id for rp in role_permissions}
        permissions: tuple[Permission, ...] = ()
        if permission_ids:
            permissions = tuple(
                self.session.scalars(select(Permission).where(Permission.id.in_(permission_ids)))
            )
        return PermissionSnapshot(
            roles=roles,
            permissions=permissions,
            user_roles=user_roles,
            role_permissions=role_permissions,
        )

    def has_permission(
        self, user: User | None, permission_code: object, as_of: datetime | None = None
    ) -> bool:
        """Fail-closed permission check for a loaded user."""
        if user is None:
            return False
        if PermissionCode.parse(permission_code) is None:
            logger.debug("Permission code %r is not cataloged", permission_code)
            return False
        if not user.is_active:
            logger.warning(
                "Denied %s to user %s: account status is %s", permission_code, user.id, user.status
            )
            return False
        granted = self.snapshot_for(user.id).has_permission(user, permission_code, as_of)
        if not granted:
            logger.warning("Denied %s to user %s: no role grants it", permission_code, user.id)
        return granted

    def has_any(self, user: User | None, permission_codes: Iterable[object]) -> bool:
        if user is None or not user.is_active:
            return False
        codes = self.permissions_for(user)
        return any(
            (parsed := PermissionCode.parse(c)) is not None and parsed.value in codes
            for c in permission_codes
        )

    def permissions_for(self, user: User) -> frozenset[str]:
        """Effective permission codes. Empty when the account is not active."""
        if not user.is_active:
            return frozenset()
        return self.snapshot_for(user.id).granted_codes(user.id)
