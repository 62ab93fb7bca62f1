"""Unit tests for auth/dependencies.py -- role policies and the two request gates."""

from __future__ import annotations

from types import SimpleNamespace

import fakeredis
import pytest

from auth.dependencies import AllowedRoles, Authorize, authenticate
from auth.errors import Forbidden, Unauthorized
from auth.models import Role, UserInfo
from auth.sessions import RedisSessionStore, Session, SessionManager


def _info(role: str) -> UserInfo:
    return UserInfo(id="u1", account_id="a1", email="u@x.com", role=role, status="ACTIVE")


def _request(session: Session | None = None, user: UserInfo | None = None):
    """Minimal stand-in for a Starlette Request: only .state is used."""
    state = SimpleNamespace(session=session)
    if user is not None:
        state.user = user
    return SimpleNamespace(state=state)


# ---------------------------------------------------------------------------
# AllowedRoles
# ---------------------------------------------------------------------------


class TestAllowedRoles:
    def test_any_admits_every_role(self):
        policy = AllowedRoles.any()
        assert all(policy.admits(r.value) for r in Role)

    def test_explicit_set(self):
        policy = AllowedRoles.of(Role.ROOT, Role.MANAGER)
        assert policy.admits("ROOT")
        assert policy.admits("MANAGER")
        assert not policy.admits("CUSTOMER")

    def test_unknown_role_never_admitted_by_explicit_set(self):
        assert not AllowedRoles.of(*Role).admits("SUPERUSER")

    def test_role_match_is_exact(self):
        assert not AllowedRoles.of(Role.ROOT).admits("root")

    def test_empty_set_admits_nobody(self):
        assert not AllowedRoles().admits("ROOT")


# ---------------------------------------------------------------------------
# authenticate
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    return RedisSessionStore(fakeredis.FakeRedis(), key_prefix="deps:")


def test_authenticate_without_session_user_raises_401(store):
    with pytest.raises(Unauthorized) as excinfo:
        authenticate(_request(Session(store)))
    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Authentication required"


def test_authenticate_attaches_user_to_request(store):
    session = Session(store)
    SessionManager.login(session, _info("WAITER"))
    request = _request(Session(store, session.token))

    user = authenticate(request)

    assert user.role == "WAITER"
    assert request.state.user == user


# ---------------------------------------------------------------------------
# Authorize
# ---------------------------------------------------------------------------


def test_authorize_admits_allowed_role():
    gate = Authorize(AllowedRoles.of(Role.MANAGER))
    assert gate(_request(user=_info("MANAGER"))).role == "MANAGER"


def test_authorize_rejects_other_role_with_403():
    gate = Authorize(AllowedRoles.of(Role.MANAGER))
    with pytest.raises(Forbidden) as excinfo:
        gate(_request(user=_info("CUSTOMER")))
    assert excinfo.value.status_code == 403


def test_authorize_without_identity_is_403_not_401():
    gate = Authorize(AllowedRoles.any())
    with pytest.raises(Forbidden) as excinfo:
        gate(_request())
    assert excinfo.value.status_code == 403
