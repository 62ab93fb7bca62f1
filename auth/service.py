"""
auth/service.py -- Credential verification for the login flow.

AuthService.login() runs a strictly sequential check and stops at the first
failure:

  1. validate input        -> ValidationError (no lookup happens)
  2. look up by email      -> InvalidCredentials on a miss
  3. status / soft delete  -> Unauthorized
  4. verify password       -> InvalidCredentials on no hash or mismatch
  5. return UserInfo

Steps 2 and 4 raise the same exception with the same message, and step 2
still spends one Argon2 verification (equalize_timing) before failing, so
neither the response body nor its latency reveals whether the email exists.

The service never retries. A failed login is a caller error, and a storage
error from the lookup propagates unchanged.

Layer rule: no imports from api/ or users/. The user store is reached only
through the UserLookup protocol.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from email_validator import EmailNotValidError, validate_email

from auth.errors import InvalidCredentials, Unauthorized, ValidationError
from auth.models import User, UserInfo
from auth.passwords import equalize_timing, hash_password, needs_rehash, verify_password

logger = logging.getLogger("usergate.auth")


class UserLookup(Protocol):
    def find_by_email(self, email: str) -> User | None: ...


def validate_login_input(email: str, password: str) -> None:
    """Raise ValidationError naming the first offending field."""
    if not email:
        raise ValidationError("email: Invalid email format")
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError("email: Invalid email format") from exc
    if not password:
        raise ValidationError("password: Password is required")


class AuthService:
    """Verifies email/password pairs against the user store.

    on_rehash, when given, is called as on_rehash(user_id, new_hash) after a
    successful login whose stored hash used outdated Argon2 parameters.
    """

    def __init__(
        self,
        lookup: UserLookup,
        on_rehash: Callable[[str, str], None] | None = None,
    ) -> None:
        self._lookup = lookup
        self._on_rehash = on_rehash

    def login(self, email: str, password: str) -> UserInfo:
        logger.info("Attempting login for user: %s", email)
        validate_login_input(email, password)

        user = self._lookup.find_by_email(email)
        if user is None:
            equalize_timing(password)
            raise InvalidCredentials()

        if not user.is_active:
            logger.info("Login rejected for inactive user: %s", email)
            raise Unauthorized("User is not active")

        if user.password_hash is None:
            equalize_timing(password)
            raise InvalidCredentials()
        if not verify_password(password, user.password_hash):
            raise InvalidCredentials()

        if self._on_rehash is not None and needs_rehash(user.password_hash):
            self._on_rehash(str(user.id), hash_password(password))
            logger.info("Upgraded password hash parameters for user %s", user.id)

        logger.info("User logged in successfully: %s", email)
        return UserInfo.from_user(user)
