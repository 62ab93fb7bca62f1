"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Two gates run in order on every protected route:

  authenticate       -- resolves the caller from the session handle that
                        SessionMiddleware attached. No session user -> 401.
                        On success the UserInfo is written to
                        request.state.user for the rest of the request.

  Authorize(allowed) -- reads request.state.user and checks the role against
                        the route's AllowedRoles. Missing identity or role not
                        admitted -> 403.

Routers list them as dependencies=[Depends(authenticate)] and each route adds
dependencies=[Depends(Authorize(...))]. FastAPI resolves router dependencies
before route dependencies, which gives the required ordering.

Both gates only read. Neither touches session state.

Layer rule: no imports from api/ or users/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from auth.errors import Forbidden, Unauthorized
from auth.models import Role, UserInfo
from auth.sessions import SessionManager, get_session


def authenticate(request: Request) -> UserInfo:
    """Require a logged-in session. Raises Unauthorized (401) if there is none.

    Declared as a plain def: the session handle loads from Redis on first
    access, so FastAPI runs this in the thread pool instead of the event loop.
    """
    user = SessionManager.current_user(get_session(request))
    if user is None:
        raise Unauthorized("Authentication required")
    request.state.user = user
    return user


@dataclass(frozen=True)
class AllowedRoles:
    """Per-route role policy.

    any_role=True admits every authenticated caller; otherwise the caller's
    role must be one of roles. Build with AllowedRoles.any() or
    AllowedRoles.of(Role.MANAGER, ...).
    """

    roles: frozenset[Role] = frozenset()
    any_role: bool = False

    @classmethod
    def any(cls) -> AllowedRoles:
        return cls(any_role=True)

    @classmethod
    def of(cls, *roles: Role) -> AllowedRoles:
        return cls(roles=frozenset(roles))

    def admits(self, role: str) -> bool:
        if self.any_role:
            return True
        parsed = Role.parse(role)
        return parsed is not None and parsed in self.roles


class Authorize:
    """Dependency that enforces an AllowedRoles policy on a route.

    Usage:
        @router.get("/users", dependencies=[Depends(Authorize(MANAGEMENT))])
    """

    def __init__(self, allowed: AllowedRoles) -> None:
        self.allowed = allowed

    def __call__(self, request: Request) -> UserInfo:
        user: UserInfo | None = getattr(request.state, "user", None)
        if user is None or not self.allowed.admits(user.role):
            raise Forbidden("Forbidden")
        return user

    def __repr__(self) -> str:
        return f"Authorize({self.allowed!r})"
