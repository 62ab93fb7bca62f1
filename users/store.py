"""
users/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper.
Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Soft delete:
  soft_delete() stamps deleted_at; restore() clears it. The two email
  queries deliberately differ:
    find_by_email()   -- returns soft-deleted and inactive records too, so the
                         login path can reject them explicitly.
    exists_by_email() -- ignores soft-deleted records. The UNIQUE index still
                         covers them, so create_user() reports Conflict
                         for a soft-deleted user's email.
  The filtered list queries (by account, branch, role) also skip
  soft-deleted records; list_users() and get_by_id() do not.

Storage failures are logged and re-raised as InternalError. A duplicate email
on insert is reported as Conflict.

Layer rule: may import from auth/ and core/, never from api/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, create_engine, event, func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import Conflict, InternalError, NotFound
from auth.models import User, UserStatus

logger = logging.getLogger("usergate.users")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),  # UUID4 string
    Column("account_id", String(36), nullable=False),
    Column("branch_id", String(36)),
    Column("name", String(100)),
    Column("email", String(255), nullable=False, unique=True, index=True),
    Column("password_hash", String(255)),  # NULL for users without a password
    Column("role", String(50), nullable=False, server_default="CUSTOMER"),
    Column("status", String(20), nullable=False, server_default="ACTIVE"),
    Column("created_at", String(32), nullable=False, index=True),
    Column("updated_at", String(32), nullable=False),
    Column("deleted_at", String(32)),  # soft-delete marker
)

# Fields update_user() accepts. Anything else is a programming error.
_UPDATABLE = {"account_id", "branch_id", "name", "email", "password_hash", "role", "status"}


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///usergate.db")
        user_id = store.create_user(User(account_id=..., email="a@x.com", role="CUSTOMER"))
        user = store.find_by_email("a@x.com")
        store.close()

    Pool options (pool_size, max_overflow, pool_timeout, pool_recycle) are
    applied to server databases only; SQLite ignores them.
    """

    def __init__(
        self,
        db_url: str = "sqlite:///usergate.db",
        *,
        pool_size: int = 10,
        max_overflow: int = 0,
        pool_timeout: int = 30,
        pool_recycle: int = 600,
    ) -> None:
        connect_args: dict = {}
        engine_kwargs: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        else:
            engine_kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                pool_pre_ping=True,
            )
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises Conflict if the email already exists (including soft-deleted
        rows still holding the UNIQUE value).
        """
        user_id = str(uuid.uuid4())
        now = _now_iso()
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        account_id=user.account_id,
                        branch_id=user.branch_id,
                        name=user.name,
                        email=user.email,
                        password_hash=user.password_hash,
                        role=user.role,
                        status=user.status or UserStatus.ACTIVE.value,
                        created_at=now,
                        updated_at=now,
                        deleted_at=None,
                    )
                )
        except IntegrityError as exc:
            raise Conflict() from exc
        except SQLAlchemyError as exc:
            logger.error("Failed to create user %s: %s", user.email, exc)
            raise InternalError(f"Database error: {exc}") from exc
        logger.info("Created user with ID: %s", user_id)
        return user_id

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Returns True if a row was updated, False if user_id was not found.
        Raises Conflict if the new email collides with another user.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        fields["updated_at"] = _now_iso()
        try:
            with self.engine.begin() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
        except IntegrityError as exc:
            raise Conflict() from exc
        except SQLAlchemyError as exc:
            logger.error("Failed to update user %s: %s", user_id, exc)
            raise InternalError(f"Database error: {exc}") from exc
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> None:
        """Permanently delete a user record. Raises NotFound if it does not exist."""
        with self._write(f"delete user {user_id}") as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        if result.rowcount == 0:
            raise NotFound()
        logger.info("Deleted user with ID: %s", user_id)

    def soft_delete(self, user_id: str) -> None:
        """Stamp deleted_at. Raises NotFound if the user does not exist."""
        now = _now_iso()
        with self._write(f"soft delete user {user_id}") as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(deleted_at=now, updated_at=now)
            )
        if result.rowcount == 0:
            raise NotFound()
        logger.info("Soft deleted user with ID: %s", user_id)

    def restore(self, user_id: str) -> None:
        """Clear deleted_at. Raises NotFound if the user does not exist."""
        with self._write(f"restore user {user_id}") as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(deleted_at=None, updated_at=_now_iso())
            )
        if result.rowcount == 0:
            raise NotFound()
        logger.info("Restored user with ID: %s", user_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        rows = self._fetch(select(_users).where(_users.c.id == user_id), f"fetch user {user_id}")
        return _row_to_user(rows[0]) if rows else None

    def find_by_email(self, email: str) -> User | None:
        """Exact, case-sensitive email lookup. Includes inactive and soft-deleted users."""
        rows = self._fetch(select(_users).where(_users.c.email == email), "find user by email")
        return _row_to_user(rows[0]) if rows else None

    def exists_by_email(self, email: str) -> bool:
        """Return True if a non-deleted user holds this email."""
        query = (
            select(func.count())
            .select_from(_users)
            .where((_users.c.email == email) & (_users.c.deleted_at.is_(None)))
        )
        rows = self._fetch(query, "check user email")
        return (rows[0][0] or 0) > 0

    def list_users(self) -> list[User]:
        """Return every user, newest first."""
        rows = self._fetch(select(_users).order_by(_users.c.created_at.desc()), "list users")
        return [_row_to_user(r) for r in rows]

    def list_by_account(self, account_id: str) -> list[User]:
        return self._list_where(_users.c.account_id == account_id, f"list users by account {account_id}")

    def list_by_branch(self, branch_id: str) -> list[User]:
        return self._list_where(_users.c.branch_id == branch_id, f"list users by branch {branch_id}")

    def list_by_role(self, role: str) -> list[User]:
        return self._list_where(_users.c.role == role, f"list users by role {role}")

    def ping(self) -> bool:
        """Health probe. Returns False instead of raising."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except SQLAlchemyError:
            return False

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _list_where(self, condition, action: str) -> list[User]:
        query = select(_users).where(condition & _users.c.deleted_at.is_(None)).order_by(_users.c.created_at.desc())
        return [_row_to_user(r) for r in self._fetch(query, action)]

    def _fetch(self, query, action: str) -> list:
        try:
            with self.engine.connect() as conn:
                return conn.execute(query).fetchall()
        except SQLAlchemyError as exc:
            logger.error("Failed to %s: %s", action, exc)
            raise InternalError(f"Database error: {exc}") from exc

    @contextmanager
    def _write(self, action: str) -> Iterator[Connection]:
        """One transaction; SQLAlchemy errors become InternalError."""
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            logger.error("Failed to %s: %s", action, exc)
            raise InternalError(f"Database error: {exc}") from exc


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        account_id=row.account_id,
        branch_id=row.branch_id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )
