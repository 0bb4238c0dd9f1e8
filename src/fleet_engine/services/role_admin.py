"""Role and permission administration.

All four operations are idempotent: repeating a grant or revoking a grant
that does not exist succeeds without changing anything. Check ``changed``
on the result before emitting anything downstream.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_engine.errors import NotFound, UnknownPermission, UnknownRole
from fleet_engine.models import Permission, Role, RolePermission, User, UserRole
from fleet_engine.runtime import Clock, IdFactory, SystemClock, default_id_factory
from fleet_engine.services.catalog import is_cataloged
from fleet_engine.store import EntityStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GrantResult:
    """Outcome of an administration call.

    ``changed`` is False when the call was a no-op (already granted, or
    nothing to revoke).
    """

    changed: bool
    row_id: UUID | None


class RoleAdministrationService:
    """Grants and revokes roles on users and permissions on roles."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        new_id: IdFactory = default_id_factory,
    ):
        self.store = EntityStore(session)
        self.clock = clock or SystemClock()
        self.new_id = new_id

    def _require_role(self, role_id: UUID) -> Role:
        role = self.store.get(Role, role_id)
        if role is None:
            raise UnknownRole(role_id)
        return role

    def _require_cataloged_permission(self, permission_id: UUID) -> Permission:
        permission = self.store.get(Permission, permission_id)
        if permission is None or not is_cataloged(permission.code):
            raise UnknownPermission(permission_id)
        return permission

    def grant_role(self, user_id: UUID, role_id: UUID) -> GrantResult:
        """Assign a role to a user. Re-granting is a no-op."""
        self.store.require(User, user_id)
        self._require_role(role_id)

        existing = self.store.find_one(
            UserRole, UserRole.user_id == user_id, UserRole.role_id == role_id
        )
        if existing is not None:
            return GrantResult(changed=False, row_id=existing.id)

        row = self.store.add(
            UserRole(
                id=self.new_id(),
                user_id=user_id,
                role_id=role_id,
                assigned_at=self.clock.now(),
            )
        )
        logger.info("Granted role %s to user %s", role_id, user_id)
        return GrantResult(changed=True, row_id=row.id)

    def revoke_role(self, user_id: UUID, role_id: UUID) -> GrantResult:
        """Remove a role from a user. Revoking an absent grant is a no-op."""
        existing = self.store.find_one(
            UserRole, UserRole.user_id == user_id, UserRole.role_id == role_id
        )
        if existing is None:
            return GrantResult(changed=False, row_id=None)

        row_id = existing.id
        self.store.delete(existing)
        logger.info("Revoked role %s from user %s", role_id, user_id)
        return GrantResult(changed=True, row_id=row_id)

    def grant_permission(self, role_id: UUID, permission_id: UUID) -> GrantResult:
        """Grant a cataloged permission to a role.

        Raises:
            UnknownRole: role does not exist
            UnknownPermission: permission does not exist or its code is not cataloged
        """
        self._require_role(role_id)
        self._require_cataloged_permission(permission_id)

        existing = self.store.find_one(
            RolePermission,
            RolePermission.role_id == role_id,
            RolePermission.permission_id == permission_id,
        )
        if existing is not None:
            return GrantResult(changed=False, row_id=existing.id)

        row = self.store.add(
            RolePermission(id=self.new_id(), role_id=role_id, permission_id=permission_id)
        )
        logger.info("Granted permission %s to role %s", permission_id, role_id)
        return GrantResult(changed=True, row_id=row.id)

    def revoke_permission(self, role_id: UUID, permission_id: UUID) -> GrantResult:
        """Withdraw a permission from a role. Revoking an absent grant is a no-op."""
        existing = self.store.find_one(
            RolePermission,
            RolePermission.role_id == role_id,
            RolePermission.permission_id == permission_id,
        )
        if existing is None:
            return GrantResult(changed=False, row_id=None)

        row_id = existing.id
        self.store.delete(existing)
        logger.info("Revoked permission %s from role %s", permission_id, role_id)
        return GrantResult(changed=True, row_id=row_id)

    def roles_of(self, user_id: UUID) -> list[Role]:
        role_ids = select(UserRole.role_id).where(UserRole.user_id == user_id)
        return self.store.find(Role, Role.id.in_(role_ids), order_by=Role.code)

    def role_by_code(self, code: str) -> Role:
        role = self.store.find_one(Role, Role.code == code)
        if role is None:
            raise UnknownRole(code)
        return role

    def permission_by_code(self, code: str) -> Permission:
        if not is_cataloged(code):
            raise UnknownPermission(code)
        permission = self.store.find_one(Permission, Permission.code == code)
        if permission is None:
            raise UnknownPermission(code)
        return permission
