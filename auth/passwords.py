"""
auth/passwords.py -- Argon2id password hashing and verification.

Security design decisions:
  Algorithm: Argon2id via argon2-cffi's PasswordHasher. Memory-hard, so GPU
       and ASIC brute force is expensive. Cost parameters come from Settings
       (ARGON2_TIME_COST, ARGON2_MEMORY_COST, ARGON2_PARALLELISM).

  Encoding: PasswordHasher emits the PHC string format
       ($argon2id$v=19$m=...,t=...,p=...$<salt>$<digest>). The salt is 16
       random bytes drawn fresh on every call, so hashing the same password
       twice yields two different strings that both verify.

  Failure shape: verify_password() returns False for a wrong password, a
       malformed hash and an unknown algorithm tag alike. It never raises, so
       callers cannot leak which of those happened.

  Timing equalization: _DUMMY_HASH is verified whenever the account is
       missing or has no stored hash, so a lookup miss costs the same Argon2
       work as a wrong password.

Layer rule: no imports from api/ or users/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from argon2 import PasswordHasher, Type
from argon2.exceptions import HashingError, InvalidHashError, VerificationError

from auth.errors import InternalError
from core.config import get_settings

logger = logging.getLogger("usergate.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_hasher = PasswordHasher(
    time_cost=_settings.argon2_time_cost,
    memory_cost=_settings.argon2_memory_cost,
    parallelism=_settings.argon2_parallelism,
    hash_len=32,
    salt_len=16,
    type=Type.ID,
)


def hash_password(plain: str) -> str:
    """Return the Argon2id PHC string for a plaintext password.

    Raises InternalError if the underlying library fails; the message never
    includes the plaintext.
    """
    try:
        return _hasher.hash(plain)
    except HashingError as exc:
        logger.error("Password hashing failed: %s", type(exc).__name__)
        raise InternalError("Password hashing failed") from exc


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext matches the encoded hash, False otherwise."""
    try:
        return _hasher.verify(hashed, plain)
    except (VerificationError, InvalidHashError):
        return False


def needs_rehash(hashed: str) -> bool:
    """Return True if the hash was produced with parameters other than the current ones."""
    try:
        return _hasher.check_needs_rehash(hashed)
    except InvalidHashError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("usergate_timing_dummy")


def equalize_timing(plain: str) -> None:
    """Spend one Argon2 verification on a throwaway hash and discard the result."""
    verify_password(plain, _DUMMY_HASH)
