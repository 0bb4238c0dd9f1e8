"""Users, roles, permissions and the junction rows that link them.

Junction rows reference both sides by identifier only and there are no ORM
relationships between these tables. Resolution walks
``user_role -> role_permission -> permission`` with explicit queries.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_engine.models.base import Base, TimestampMixin, UTCDateTime, utcnow


class Role(Base, TimestampMixin):
    """Named bundle of permissions. Only ``description`` changes after creation."""

    __tablename__ = "role"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)


class Permission(Base):
    """Catalog entry. ``code`` is the identity used by authorization checks."""

    __tablename__ = "permission"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)


class User(Base, TimestampMixin):
    """Application account. Never deleted; disabled through ``status``."""

    __tablename__ = "app_user"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    username: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    phone: Mapped[str | None] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    password_hash: Mapped[str] = mapped_column(String, nullable=False)
    biometric_id_ref: Mapped[str | None] = mapped_column(String)
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive', 'suspended', 'pending')",
            name="app_user_status_check",
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class UserRole(Base):
    """Assignment of a role to a user. Indefinite until revoked."""

    __tablename__ = "user_role"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False
    )
    role_id: Mapped[UUID] = mapped_column(
        ForeignKey("role.id", ondelete="CASCADE"), nullable=False
    )
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="user_role_user_role_unique"),
    )


class RolePermission(Base):
    """Static grant of a permission to a role."""

    __tablename__ = "role_permission"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    role_id: Mapped[UUID] = mapped_column(
        ForeignKey("role.id", ondelete="CASCADE"), nullable=False
    )
    permission_id: Mapped[UUID] = mapped_column(
        ForeignKey("permission.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="role_permission_unique"),
    )
