"""
users/service.py -- Business rules for user management.

UserService sits between the HTTP routes and UserStore:
  - roles and statuses are checked against the closed enums before any write
  - email uniqueness is checked against non-deleted users (Conflict)
  - plaintext passwords are hashed here and never passed further down
  - ROOT users cannot be deactivated

Layer rule: may import from auth/ and core/, never from api/.
"""

from __future__ import annotations

import logging

from auth.errors import Conflict, Forbidden, NotFound, ValidationError
from auth.models import Role, User, UserStatus
from auth.passwords import hash_password
from users.store import UserStore

logger = logging.getLogger("usergate.users")


def _require_role(role: str) -> str:
    if Role.parse(role) is None:
        raise ValidationError(f"Role {role} is not valid")
    return role


def _require_status(status: str) -> str:
    if status not in (UserStatus.ACTIVE.value, UserStatus.INACTIVE.value):
        raise ValidationError(f"Status {status} is not valid")
    return status


class UserService:
    """User CRUD on top of a UserStore."""

    def __init__(self, store: UserStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all(self) -> list[User]:
        return self.store.list_users()

    def get_by_id(self, user_id: str) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFound()
        return user

    def get_by_account_id(self, account_id: str) -> list[User]:
        return self.store.list_by_account(account_id)

    def get_by_branch_id(self, branch_id: str) -> list[User]:
        return self.store.list_by_branch(branch_id)

    def get_by_role(self, role: str) -> list[User]:
        return self.store.list_by_role(_require_role(role))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create(
        self,
        *,
        account_id: str,
        email: str,
        password: str,
        role: str,
        branch_id: str | None = None,
        name: str | None = None,
    ) -> User:
        """Create an ACTIVE user. Raises ValidationError for an unknown role, Conflict for a taken email."""
        logger.info("Creating new user: %s", email)
        _require_role(role)
        if self.store.exists_by_email(email):
            raise Conflict()

        user_id = self.store.create_user(
            User(
                account_id=account_id,
                branch_id=branch_id,
                name=name,
                email=email,
                password_hash=hash_password(password),
                role=role,
                status=UserStatus.ACTIVE.value,
            )
        )
        return self.get_by_id(user_id)

    def update(
        self,
        user_id: str,
        *,
        branch_id: str | None = None,
        name: str | None = None,
        email: str | None = None,
        password: str | None = None,
        role: str | None = None,
        status: str | None = None,
    ) -> User:
        """Apply the given (non-None) fields. Raises NotFound, Conflict or ValidationError."""
        logger.info("Updating user with ID: %s", user_id)
        current = self.get_by_id(user_id)

        updates: dict = {}
        if email is not None and email != current.email:
            if self.store.exists_by_email(email):
                raise Conflict()
            updates["email"] = email
        if role is not None:
            updates["role"] = _require_role(role)
        if status is not None:
            updates["status"] = _require_status(status)
        if branch_id is not None:
            updates["branch_id"] = branch_id
        if name is not None:
            updates["name"] = name
        if password is not None:
            updates["password_hash"] = hash_password(password)

        if updates and not self.store.update_user(user_id, **updates):
            raise NotFound()
        return self.get_by_id(user_id)

    def delete(self, user_id: str) -> None:
        logger.info("Deleting user with ID: %s", user_id)
        self.store.delete_user(user_id)

    def deactivate(self, user_id: str) -> None:
        """Soft delete. ROOT users are protected."""
        logger.info("Deactivating user with ID: %s", user_id)
        user = self.get_by_id(user_id)
        if user.role == Role.ROOT.value:
            raise Forbidden("Cannot deactivate root users")
        self.store.soft_delete(user_id)

    def activate(self, user_id: str) -> None:
        """Restore from soft delete."""
        logger.info("Activating user with ID: %s", user_id)
        self.store.restore(user_id)

    def rehash_password(self, user_id: str, password_hash: str) -> None:
        """Replace a stored hash with one computed under current Argon2 parameters."""
        self.store.update_user(user_id, password_hash=password_hash)
