"""Tests for role-based permission resolution."""

from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import select

from fleet_engine.models import Permission, Role, RolePermission, User, UserRole
from fleet_engine.services.catalog import DEFAULT_ROLE_GRANTS, PermissionCode, RoleCode
from fleet_engine.services.permission_resolver import PermissionResolver, PermissionSnapshot


@pytest.fixture
def resolver(session):
    return PermissionResolver(session)


class TestHasPermission:
    """Account standing and role grants together decide access."""

    def test_dispatcher_can_update_trips_but_not_delete(self, resolver, dispatcher, clock):
        """Dispatcher holds trips.update and lacks trips.delete."""
        assert resolver.has_permission(dispatcher, "trips.update", clock.now()) is True
        assert resolver.has_permission(dispatcher, "trips.delete", clock.now()) is False

    def test_suspended_account_is_denied_everything(self, resolver, make_user, clock):
        """A suspended dispatcher is denied even permissions its role grants."""
        user = make_user("dispatcher", status="suspended")
        assert resolver.has_permission(user, "trips.update", clock.now()) is False

    @pytest.mark.parametrize("status", ["pending", "inactive", "suspended"])
    def test_non_active_statuses_are_denied(self, resolver, make_user, status, clock):
        """Only active accounts pass the standing check."""
        user = make_user("admin", status=status)
        assert resolver.has_permission(user, "trips.read", clock.now()) is False

    def test_unknown_permission_code_is_false(self, resolver, admin, clock):
        """Codes outside the catalog resolve to False, never an error."""
        assert resolver.has_permission(admin, "trips.teleport", clock.now()) is False
        assert resolver.has_permission(admin, "", clock.now()) is False
        assert resolver.has_permission(admin, None, clock.now()) is False
        assert resolver.has_permission(admin, 42, clock.now()) is False

    def test_enum_and_string_codes_are_equivalent(self, resolver, driver, clock):
        """PermissionCode members and their string values resolve alike."""
        assert resolver.has_permission(driver, PermissionCode.TRIPS_READ, clock.now()) is True
        assert resolver.has_permission(driver, "trips.read", clock.now()) is True

    def test_user_without_roles_has_nothing(self, resolver, make_user, clock):
        """An active user with no roles is denied."""
        user = make_user()
        assert resolver.has_permission(user, "trips.read", clock.now()) is False
        assert resolver.permissions_for(user) == frozenset()

    def test_missing_user_is_denied(self, resolver, clock):
        assert resolver.has_permission(None, "trips.read", clock.now()) is False

    def test_multiple_roles_union(self, resolver, make_user, clock):
        """Permissions from every role the user holds are combined."""
        user = make_user("driver", "dispatcher")
        codes = resolver.permissions_for(user)
        assert "escrow.read" in codes  # driver only
        assert "trips.update" in codes  # dispatcher only

    def test_as_of_does_not_filter_assignments(self, resolver, driver, clock):
        """Role assignments are indefinite, so any as-of instant resolves the same."""
        assert resolver.has_permission(driver, "trips.read", None) is True
        assert resolver.has_permission(driver, "trips.read", clock.now()) is True

    def test_revoked_permission_is_no_longer_granted(
        self, session, resolver, dispatcher, roles, permissions, clock
    ):
        """Removing the role_permission row removes access."""
        row = session.scalars(
            select(RolePermission).where(
                RolePermission.role_id == roles["dispatcher"].id,
                RolePermission.permission_id == permissions["trips.update"].id,
            )
        ).one()
        session.delete(row)
        session.flush()
        assert resolver.has_permission(dispatcher, "trips.update", clock.now()) is False

    def test_has_any(self, resolver, driver):
        assert resolver.has_any(driver, ["trips.delete", "fuel.create"]) is True
        assert resolver.has_any(driver, ["trips.delete", "nope.nope"]) is False


class TestDefaultGrants:
    """Seeded catalog grants the documented defaults."""

    @pytest.mark.parametrize("role", list(RoleCode))
    def test_permissions_match_catalog(self, resolver, make_user, role):
        user = make_user(role.value)
        expected = {p.value for p in DEFAULT_ROLE_GRANTS[role]}
        assert resolver.permissions_for(user) == frozenset(expected)

    def test_admin_holds_every_permission(self, resolver, admin):
        assert resolver.permissions_for(admin) == frozenset(p.value for p in PermissionCode)

    def test_manager_cannot_delete_or_administer(self, resolver, manager):
        codes = resolver.permissions_for(manager)
        assert "trips.approve" in codes
        assert "costs.approve" in codes
        assert not any(c.endswith(".delete") for c in codes)
        assert "roles.manage" not in codes


class TestPermissionSnapshot:
    """The snapshot resolves without a database."""

    def _snapshot(self, user_id):
        role = Role(id=uuid4(), code="driver", name="Driver")
        read = Permission(id=uuid4(), code="trips.read", name="Read trips")
        stray = Permission(id=uuid4(), code="trips.fly", name="Not cataloged")
        return PermissionSnapshot(
            roles=(role,),
            permissions=(read, stray),
            user_roles=(UserRole(id=uuid4(), user_id=user_id, role_id=role.id),),
            role_permissions=(
                RolePermission(id=uuid4(), role_id=role.id, permission_id=read.id),
                RolePermission(id=uuid4(), role_id=role.id, permission_id=stray.id),
            ),
        )

    def test_resolves_in_memory(self):
        user = User(id=uuid4(), username="a", email="a@x", password_hash="h", status="active")
        snapshot = self._snapshot(user.id)
        assert snapshot.has_permission(user, "trips.read") is True
        assert snapshot.has_permission(user, "trips.update") is False

    def test_uncataloged_stored_permission_never_grants(self):
        """A stray permission row cannot be used even if a role carries it."""
        user = User(id=uuid4(), username="a", email="a@x", password_hash="h", status="active")
        assert self._snapshot(user.id).has_permission(user, "trips.fly") is False

    def test_assignment_to_missing_role_is_ignored(self):
        user_id = uuid4()
        snapshot = PermissionSnapshot(
            user_roles=(UserRole(id=uuid4(), user_id=user_id, role_id=uuid4()),),
        )
        assert snapshot.granted_codes(user_id) == frozenset()


class TestAuthorizationProperties:
    """Property: a non-active account is denied every code, cataloged or not."""

    @settings(max_examples=60, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        status=st.sampled_from(["pending", "inactive", "suspended"]),
        code=st.one_of(
            st.sampled_from([p.value for p in PermissionCode]),
            st.text(max_size=20),
        ),
    )
    def test_non_active_never_authorized(self, resolver, admin, status, code):
        admin.status = status
        try:
            assert resolver.has_permission(admin, code) is False
        finally:
            admin.status = "active"

    @settings(max_examples=60, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(code=st.text(max_size=30))
    def test_unknown_codes_never_authorized(self, resolver, admin, code):
        if code in {p.value for p in PermissionCode}:
            return
        assert resolver.has_permission(admin, code) is False
