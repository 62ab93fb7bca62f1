"""
auth/models.py -- Domain types for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and
services do the work; these types own the domain shape.

Two views of a user exist on purpose:
  User     -- the full identity record as persisted, including password_hash.
  UserInfo -- the credential-free projection that goes into session state and
              response bodies. There is no path from UserInfo back to a hash.

Layer rule: no imports from api/ or users/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum


class Role(str, Enum):
    """Closed set of roles a user can hold."""

    ROOT = "ROOT"
    GENERAL_MANAGER = "GENERAL_MANAGER"
    MANAGER = "MANAGER"
    CUSTOMER = "CUSTOMER"
    WAITER = "WAITER"
    COOK = "COOK"
    BARMAN = "BARMAN"
    CASH_REGISTER = "CASH_REGISTER"

    @classmethod
    def parse(cls, value: str) -> Role | None:
        """Return the Role for an exact role string, or None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


@dataclass
class User:
    """A persisted identity record.

    deleted_at is the soft-delete marker: an ISO 8601 timestamp when the
    record was logically removed, None otherwise. A record with deleted_at
    set must never authenticate, whatever its status says.

    password_hash is None for users provisioned without a password. Such
    users cannot log in with any password.
    """

    account_id: str
    email: str
    role: str
    id: str | None = None
    branch_id: str | None = None
    name: str | None = None
    password_hash: str | None = None
    status: str = UserStatus.ACTIVE.value
    created_at: str | None = None
    updated_at: str | None = None
    deleted_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value and self.deleted_at is None


@dataclass(frozen=True)
class UserInfo:
    """Credential-free identity view stored in the session and returned to clients."""

    id: str
    account_id: str
    email: str
    role: str
    status: str
    branch_id: str | None = None
    name: str | None = None

    @classmethod
    def from_user(cls, user: User) -> UserInfo:
        return cls(
            id=str(user.id),
            account_id=user.account_id,
            branch_id=user.branch_id,
            name=user.name,
            email=user.email,
            role=user.role,
            status=user.status,
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> UserInfo:
        """Rebuild a view from session payload data.

        Raises KeyError/TypeError on a payload that does not have the expected
        shape; the session manager treats that as "no session".
        """
        return cls(
            id=str(data["id"]),
            account_id=str(data["account_id"]),
            branch_id=data.get("branch_id"),
            name=data.get("name"),
            email=str(data["email"]),
            role=str(data["role"]),
            status=str(data["status"]),
        )
