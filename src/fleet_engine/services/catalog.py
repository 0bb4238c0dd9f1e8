"""Closed role and permission catalogs, and catalog seeding."""

from __future__ import annotations

import logging
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_engine.models import Permission, Role, RolePermission

logger = logging.getLogger(__name__)


class RoleCode(str, Enum):
    """Role codes known to the system."""

    DRIVER = "driver"
    DISPATCHER = "dispatcher"
    MANAGER = "manager"
    ADMIN = "admin"


class PermissionCode(str, Enum):
    """Permission codes. The catalog is closed: nothing else can be granted."""

    TRIPS_CREATE = "trips.create"
    TRIPS_READ = "trips.read"
    TRIPS_UPDATE = "trips.update"
    TRIPS_DELETE = "trips.delete"
    TRIPS_APPROVE = "trips.approve"

    VEHICLES_CREATE = "vehicles.create"
    VEHICLES_READ = "vehicles.read"
    VEHICLES_UPDATE = "vehicles.update"
    VEHICLES_DELETE = "vehicles.delete"

    DOCUMENTS_CREATE = "documents.create"
    DOCUMENTS_READ = "documents.read"
    DOCUMENTS_UPDATE = "documents.update"
    DOCUMENTS_DELETE = "documents.delete"
    DOCUMENTS_APPROVE = "documents.approve"

    FUEL_CREATE = "fuel.create"
    FUEL_READ = "fuel.read"
    FUEL_UPDATE = "fuel.update"
    FUEL_APPROVE = "fuel.approve"

    COSTS_CREATE = "costs.create"
    COSTS_READ = "costs.read"
    COSTS_UPDATE = "costs.update"
    COSTS_DELETE = "costs.delete"
    COSTS_APPROVE = "costs.approve"

    ESCROW_READ = "escrow.read"
    ESCROW_UPDATE = "escrow.update"
    ESCROW_APPROVE = "escrow.approve"

    REPORTS_READ = "reports.read"
    REPORTS_CREATE = "reports.create"
    REPORTS_APPROVE = "reports.approve"

    USERS_MANAGE = "users.manage"
    ROLES_MANAGE = "roles.manage"

    @classmethod
    def parse(cls, code: object) -> PermissionCode | None:
        """Return the catalog member for ``code``, or None if it is not one."""
        if isinstance(code, cls):
            return code
        if not isinstance(code, str):
            return None
        try:
            return cls(code)
        except ValueError:
            return None

    @property
    def namespace(self) -> str:
        return self.value.split(".", 1)[0]

    @property
    def action(self) -> str:
        return self.value.split(".", 1)[1]


def is_cataloged(code: object) -> bool:
    return PermissionCode.parse(code) is not None


_P = PermissionCode

DEFAULT_ROLE_GRANTS: dict[RoleCode, frozenset[PermissionCode]] = {
    RoleCode.DRIVER: frozenset({
        _P.TRIPS_READ,
        _P.VEHICLES_READ,
        _P.DOCUMENTS_CREATE,
        _P.DOCUMENTS_READ,
        _P.FUEL_CREATE,
        _P.FUEL_READ,
        _P.COSTS_READ,
        _P.ESCROW_READ,
    }),
    RoleCode.DISPATCHER: frozenset({
        _P.TRIPS_CREATE,
        _P.TRIPS_READ,
        _P.TRIPS_UPDATE,
        _P.VEHICLES_READ,
        _P.VEHICLES_UPDATE,
        _P.DOCUMENTS_CREATE,
        _P.DOCUMENTS_READ,
        _P.DOCUMENTS_UPDATE,
        _P.FUEL_READ,
        _P.COSTS_READ,
        _P.REPORTS_READ,
    }),
    RoleCode.MANAGER: frozenset(
        p for p in PermissionCode
        if p.action != "delete" and p not in (_P.USERS_MANAGE, _P.ROLES_MANAGE)
    ),
    RoleCode.ADMIN: frozenset(PermissionCode),
}

ROLE_NAMES: dict[RoleCode, str] = {
    RoleCode.DRIVER: "Driver",
    RoleCode.DISPATCHER: "Dispatcher",
    RoleCode.MANAGER: "Manager",
    RoleCode.ADMIN: "Administrator",
}


def _permission_name(code: PermissionCode) -> str:
    return f"{code.action.capitalize()} {code.namespace}"


def seed_catalog(session: Session, with_default_grants: bool = True) -> dict[str, int]:
    """Create missing roles, permissions and default grants.

    Safe to run repeatedly; existing rows are left untouched.

    Returns:
        Counts of rows created per table.
    """
    created = {"role": 0, "permission": 0, "role_permission": 0}

    roles = {r.code: r for r in session.scalars(select(Role))}
    for code in RoleCode:
        if code.value not in roles:
            role = Role(code=code.value, name=ROLE_NAMES[code])
            session.add(role)
            roles[code.value] = role
            created["role"] += 1

    permissions = {p.code: p for p in session.scalars(select(Permission))}
    for code in PermissionCode:
        if code.value not in permissions:
            permission = Permission(code=code.value, name=_permission_name(code))
            session.add(permission)
            permissions[code.value] = permission
            created["permission"] += 1

    session.flush()

    if with_default_grants:
        existing = {
            (rp.role_id, rp.permission_id) for rp in session.scalars(select(RolePermission))
        }
        for role_code, grants in DEFAULT_ROLE_GRANTS.items():
            role = roles[role_code.value]
            for perm_code in sorted(grants, key=lambda p: p.value):
                permission = permissions[perm_code.value]
                if (role.id, permission.id) in existing:
                    continue
                session.add(RolePermission(role_id=role.id, permission_id=permission.id))
                existing.add((role.id, permission.id))
                created["role_permission"] += 1
        session.flush()

    logger.info("Catalog seeded: %s", created)
    return created
