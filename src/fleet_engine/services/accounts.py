"""User account registration and status lifecycle."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from fleet_engine.errors import Conflict, Unauthorized
from fleet_engine.models import User
from fleet_engine.runtime import Clock, IdFactory, SystemClock, default_id_factory
from fleet_engine.services.state_machine import UserStateMachine, UserStatus, status_value
from fleet_engine.store import EntityStore

logger = logging.getLogger(__name__)


class AccountService:
    """Creates users and moves them between account statuses.

    Users are never deleted. ``inactive`` is the soft-disabled state.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        new_id: IdFactory = default_id_factory,
    ):
        self.store = EntityStore(session)
        self.clock = clock or SystemClock()
        self.new_id = new_id

    def register_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        phone: str | None = None,
        activate: bool = False,
    ) -> User:
        """Create a user, ``pending`` unless ``activate`` is set.

        Raises:
            Conflict: email already registered
        """
        email = email.strip().lower()
        if self.store.find_one(User, User.email == email) is not None:
            raise Conflict("app_user", "email", email)

        now = self.clock.now()
        user = self.store.add(
            User(
                id=self.new_id(),
                username=username,
                email=email,
                phone=phone,
                password_hash=password_hash,
                status=UserStatus.ACTIVE.value if activate else UserStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Registered user %s with status %s", user.id, user.status)
        return user

    def change_status(self, user_id: UUID, to_status: str) -> tuple[User, str]:
        """Move a user to ``to_status``.

        Returns the user and the status it left.
        """
        user = self.store.require(User, user_id)
        from_status = user.status
        UserStateMachine.validate_transition(from_status, to_status)

        user.status = status_value(to_status)
        user.updated_at = self.clock.now()
        self.store.session.flush()
        logger.info("User %s status %s -> %s", user_id, from_status, user.status)
        return user, from_status

    def activate(self, user_id: UUID) -> User:
        return self.change_status(user_id, UserStatus.ACTIVE)[0]

    def suspend(self, user_id: UUID) -> User:
        return self.change_status(user_id, UserStatus.SUSPENDED)[0]

    def deactivate(self, user_id: UUID) -> User:
        return self.change_status(user_id, UserStatus.INACTIVE)[0]

    def record_login(self, user_id: UUID) -> User:
        """Stamp ``last_login_at``. Only accounts in good standing may log in."""
        user = self.store.require(User, user_id)
        if not user.is_active:
            raise Unauthorized(user_id, reason=f"account status is {user.status}")
        user.last_login_at = self.clock.now()
        self.store.session.flush()
        return user
