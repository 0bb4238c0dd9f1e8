"""Domain errors raised by fleet engine services.

Every error carries a stable ``code`` so outer layers can map it without
parsing messages. Messages are diagnostic only and are never shown to
end users as-is.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

E = TypeVar("E", bound=Enum)


class FleetError(Exception):
    """Base class for expected business-rule failures."""

    code = "FLEET_ERROR"


class Unauthorized(FleetError):
    """Permission denied, or the account is not in good standing."""

    code = "UNAUTHORIZED"

    def __init__(
        self,
        user_id: UUID | None,
        permission: str | None = None,
        reason: str | None = None,
    ):
        self.user_id = user_id
        self.permission = permission
        self.reason = reason
        msg = f"User {user_id} is not authorized"
        if permission:
            msg += f" for '{permission}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidTransition(FleetError):
    """Raised when a lifecycle rule rejects a status change."""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        entity: str,
        from_status: str,
        to_status: str,
        reason: str | None = None,
    ):
        self.entity = entity
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid {entity} transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class UnknownRole(FleetError):
    """Role id does not resolve to a stored role."""

    code = "UNKNOWN_ROLE"

    def __init__(self, role_id: Any):
        self.role_id = role_id
        super().__init__(f"Unknown role {role_id}")


class UnknownPermission(FleetError):
    """Permission id or code is not part of the permission catalog."""

    code = "UNKNOWN_PERMISSION"

    def __init__(self, permission: Any):
        self.permission = permission
        super().__init__(f"Unknown permission {permission}")


class NotFound(FleetError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class Conflict(FleetError):
    """A unique value is already taken."""

    code = "CONFLICT"

    def __init__(self, entity: str, field: str, value: Any):
        self.entity = entity
        self.field = field
        self.value = value
        super().__init__(f"{entity} with {field}={value!r} already exists")


class AlreadyIssued(FleetError):
    """Settlement issuance attempted twice."""

    code = "ALREADY_ISSUED"

    def __init__(self, settlement_id: UUID, issued_at: datetime | None):
        self.settlement_id = settlement_id
        self.issued_at = issued_at
        super().__init__(f"Settlement {settlement_id} already issued at {issued_at}")


class AccountingError(FleetError):
    """A posting would violate an accounting invariant."""

    code = "ACCOUNTING_ERROR"

    def __init__(self, reason: str, account_id: UUID | None = None):
        self.reason = reason
        self.account_id = account_id
        msg = reason if account_id is None else f"Account {account_id}: {reason}"
        super().__init__(msg)


class InvalidValue(FleetError):
    """A field holds a value outside its closed set of choices."""

    code = "INVALID_VALUE"

    def __init__(self, field: str, value: Any, allowed: list[str]):
        self.field = field
        self.value = value
        self.allowed = allowed
        super().__init__(f"{field} {value!r} is not one of {', '.join(allowed)}")


def parse_choice(choices: type[E], value: Any, field: str) -> E:
    """Coerce ``value`` to a member of the ``choices`` enum or raise InvalidValue."""
    try:
        return choices(value)
    except ValueError as e:
        raise InvalidValue(field, value, [member.value for member in choices]) from e
