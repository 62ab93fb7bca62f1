"""
auth/sessions.py -- Server-side sessions: Redis store, per-request handle, cookie middleware.

Pieces, leaves first:

  RedisSessionStore  -- persists session records as JSON under
                        "<prefix><token>" with a TTL. It is the only code that
                        ever generates a token (secrets.token_urlsafe(32)).

  Session            -- the per-request handle. Holds the token from the
                        cookie, loads the record lazily on first access and
                        writes through to the store on every mutation, so a
                        store failure surfaces inside the route that caused it.

  SessionManager     -- what the application stores: a single "user" entry
                        holding a UserInfo dict. login/logout/current_user.

  SessionMiddleware  -- pure ASGI middleware. Verifies the signed cookie,
                        attaches a Session to request.state.session, and on
                        the way out sets or expires the cookie to match the
                        handle's final token.

Cookie format: itsdangerous TimestampSigner(SECRET_KEY).sign(token). A cookie
with a bad signature or older than SESSION_MAX_AGE_SECONDS is treated as
absent without touching Redis. The cookie never carries payload data.

Layer rule: no imports from api/ or users/.
"""

from __future__ import annotations

import json
import logging
import secrets
from typing import Any

import redis
from itsdangerous import BadSignature, TimestampSigner
from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from auth.errors import InternalError
from auth.models import UserInfo

logger = logging.getLogger("usergate.sessions")


# ---------------------------------------------------------------------------
# Store adapter
# ---------------------------------------------------------------------------


class RedisSessionStore:
    """Key-value persistence for session records.

    The Redis client is injected (built in the app lifespan from Settings) so
    the store holds no global state and tests can pass fakeredis.

    Every Redis failure is logged and re-raised as InternalError. Nothing is
    retried: the caller's request fails with a 500.
    """

    _TOKEN_BYTES = 32

    def __init__(self, client: redis.Redis, key_prefix: str = "session:", ttl_seconds: int = 86400) -> None:
        self._redis = client
        self._prefix = key_prefix
        self.ttl_seconds = ttl_seconds

    def _key(self, token: str) -> str:
        return f"{self._prefix}{token}"

    def create(self, data: dict) -> str:
        """Persist a new record under a freshly generated token and return the token."""
        serialized = json.dumps(data)
        try:
            while True:
                token = secrets.token_urlsafe(self._TOKEN_BYTES)
                # nx=True: never overwrite another live session on a token collision.
                if self._redis.set(self._key(token), serialized, ex=self.ttl_seconds, nx=True):
                    return token
        except redis.RedisError as exc:
            logger.error("Session store create failed: %s", exc)
            raise InternalError("Session store unavailable") from exc

    def load(self, token: str) -> dict | None:
        """Return the stored record, or None if missing, expired or unreadable."""
        try:
            raw = self._redis.get(self._key(token))
        except redis.RedisError as exc:
            logger.error("Session store read failed: %s", exc)
            raise InternalError("Session store unavailable") from exc
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable session record")
            return None
        return data if isinstance(data, dict) else None

    def save(self, token: str, data: dict) -> None:
        """Overwrite the record for token and reset its TTL."""
        try:
            self._redis.set(self._key(token), json.dumps(data), ex=self.ttl_seconds)
        except redis.RedisError as exc:
            logger.error("Session store write failed: %s", exc)
            raise InternalError("Session store unavailable") from exc

    def delete(self, token: str) -> None:
        try:
            self._redis.delete(self._key(token))
        except redis.RedisError as exc:
            logger.error("Session store delete failed: %s", exc)
            raise InternalError("Session store unavailable") from exc

    def ping(self) -> bool:
        """Health probe. Returns False instead of raising."""
        try:
            return bool(self._redis.ping())
        except redis.RedisError:
            return False


# ---------------------------------------------------------------------------
# Per-request handle
# ---------------------------------------------------------------------------


class Session:
    """Session handle for one request.

    token is None until something is stored. After the request, the
    middleware compares token against the one the cookie carried and sets or
    expires the cookie accordingly.
    """

    def __init__(self, store: RedisSessionStore, token: str | None = None) -> None:
        self._store = store
        self.token = token
        self._data: dict | None = None

    def _load(self) -> dict:
        if self._data is None:
            record = self._store.load(self.token) if self.token else None
            if record is None:
                # Cookie pointed at an expired or deleted record.
                self.token = None
                record = {}
            self._data = record
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def insert(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._persist()

    def remove(self, key: str) -> Any:
        """Remove key and return its value (None if absent)."""
        data = self._load()
        if key not in data:
            return None
        value = data.pop(key)
        if data:
            self._persist()
        else:
            self.flush()
        return value

    def replace(self, data: dict) -> None:
        """Store data as the whole record under a brand new token in one write.

        The previous record, if any, is deleted first and nothing from it is
        carried over.
        """
        if self.token is not None:
            self._store.delete(self.token)
        self.token = None
        self._data = dict(data)
        self._persist()

    def flush(self) -> None:
        """Delete the record entirely."""
        if self.token is not None:
            self._store.delete(self.token)
        self.token = None
        self._data = {}

    def _persist(self) -> None:
        if self.token is None:
            self.token = self._store.create(self._data)
        else:
            self._store.save(self.token, self._data)


# ---------------------------------------------------------------------------
# Session manager
# ---------------------------------------------------------------------------


class SessionManager:
    """Login state on top of a Session handle.

    The payload is always {"user": <UserInfo dict>}. It is replaced whole on
    login and never patched.
    """

    USER_KEY = "user"

    @staticmethod
    def login(session: Session, user: UserInfo) -> None:
        # New token on every login so a pre-login token cannot be fixed on a victim.
        session.replace({SessionManager.USER_KEY: user.to_dict()})

    @staticmethod
    def logout(session: Session) -> UserInfo | None:
        """Remove the logged-in user. Returns the removed view, or None if there was none."""
        removed = session.remove(SessionManager.USER_KEY)
        return _to_user_info(removed)

    @staticmethod
    def current_user(session: Session) -> UserInfo | None:
        return _to_user_info(session.get(SessionManager.USER_KEY))

    @staticmethod
    def is_logged_in(session: Session) -> bool:
        return SessionManager.current_user(session) is not None


def _to_user_info(data: Any) -> UserInfo | None:
    if not isinstance(data, dict):
        return None
    try:
        return UserInfo.from_dict(data)
    except (KeyError, TypeError, ValueError):
        logger.warning("Discarding malformed session payload")
        return None


# ---------------------------------------------------------------------------
# Cookie middleware
# ---------------------------------------------------------------------------


class SessionMiddleware:
    """Attach a Session to every HTTP request and keep the cookie in sync with it.

    Modeled on starlette.middleware.sessions.SessionMiddleware, but the cookie
    holds only a signed token; the data lives in the store.
    """

    def __init__(
        self,
        app: ASGIApp,
        store: RedisSessionStore | None = None,
        secret_key: str = "",
        cookie_name: str = "connect.sid",
        max_age: int = 86400,
        path: str = "/",
        same_site: str = "lax",
        https_only: bool = False,
        domain: str | None = None,
    ) -> None:
        self.app = app
        self.store = store
        self.signer = TimestampSigner(secret_key)
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.path = path
        self.security_flags = "httponly; samesite=" + same_site
        if https_only:
            self.security_flags += "; secure"
        if domain is not None:
            self.security_flags += f"; domain={domain}"

    def _store_for(self, scope: Scope) -> RedisSessionStore:
        # The store is created in the lifespan, after middleware construction,
        # so fall back to the application state when none was passed in.
        if self.store is not None:
            return self.store
        return scope["app"].state.session_store

    def _cookie_header(self, value: str, expiry: str) -> str:
        return f"{self.cookie_name}={value}; path={self.path}; {expiry}{self.security_flags}"

    def _unsign(self, cookie: str) -> str | None:
        try:
            return self.signer.unsign(cookie.encode("utf-8"), max_age=self.max_age).decode("utf-8")
        except BadSignature:
            return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        connection = HTTPConnection(scope)
        cookie = connection.cookies.get(self.cookie_name)
        initial_token = self._unsign(cookie) if cookie else None
        session = Session(self._store_for(scope), initial_token)
        scope.setdefault("state", {})["session"] = session

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                if session.token is not None and session.token != initial_token:
                    signed = self.signer.sign(session.token.encode("utf-8")).decode("utf-8")
                    header_value = self._cookie_header(signed, f"max-age={self.max_age}; ")
                    MutableHeaders(scope=message).append("Set-Cookie", header_value)
                elif cookie is not None and session.token is None:
                    header_value = self._cookie_header("null", "expires=Thu, 01 Jan 1970 00:00:00 GMT; max-age=0; ")
                    MutableHeaders(scope=message).append("Set-Cookie", header_value)
            await send(message)

        await self.app(scope, receive, send_wrapper)


def get_session(connection: HTTPConnection) -> Session:
    """Return the Session attached by SessionMiddleware."""
    return connection.state.session
