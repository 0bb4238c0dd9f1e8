"""Tests for account registration and standing."""

from datetime import timedelta

import pytest

from fleet_engine.errors import Conflict, InvalidTransition, Unauthorized
from fleet_engine.services.accounts import AccountService


@pytest.fixture
def accounts(session, clock):
    return AccountService(session, clock)


class TestRegistration:
    """New accounts."""

    def test_registered_pending_by_default(self, accounts):
        user = accounts.register_user("rosa", "Rosa@Example.com", "hash")
        assert user.status == "pending"
        assert user.email == "rosa@example.com"

    def test_activate_on_registration(self, accounts):
        assert accounts.register_user("li", "li@example.com", "hash", activate=True).is_active

    def test_email_is_unique_case_insensitively(self, accounts):
        accounts.register_user("rosa", "rosa@example.com", "hash")
        with pytest.raises(Conflict):
            accounts.register_user("rosa2", "ROSA@example.com", "hash")


class TestStanding:
    """Status changes and login."""

    def test_suspend_and_reactivate(self, accounts, clock):
        user = accounts.register_user("sam", "sam@example.com", "hash", activate=True)
        clock.advance(timedelta(minutes=5))
        user, previous = accounts.change_status(user.id, "suspended")
        assert previous == "active"
        assert user.updated_at == clock.now()
        assert accounts.activate(user.id).status == "active"

    def test_pending_cannot_be_suspended(self, accounts):
        user = accounts.register_user("new", "new@example.com", "hash")
        with pytest.raises(InvalidTransition):
            accounts.suspend(user.id)

    def test_deactivate_is_soft(self, accounts):
        user = accounts.register_user("old", "old@example.com", "hash", activate=True)
        accounts.deactivate(user.id)
        assert user.status == "inactive"
        assert accounts.activate(user.id).is_active

    def test_login_requires_active_account(self, accounts, clock):
        user = accounts.register_user("kim", "kim@example.com", "hash")
        with pytest.raises(Unauthorized):
            accounts.record_login(user.id)

        accounts.activate(user.id)
        assert accounts.record_login(user.id).last_login_at == clock.now()
