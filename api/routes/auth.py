"""
api/routes/auth.py -- Registration, login and logout endpoints.

Routes:
  POST   /auth/register  -- create a user; 201 / 400 / 409
  POST   /auth/login     -- password login; sets the session cookie
  DELETE /auth/logout    -- ends the session; always 200
  GET    /auth/me        -- current identity view (any authenticated role)

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  Unknown email, missing hash and wrong password all produce the same 401
  body (AuthService raises InvalidCredentials for each).
  Cache-Control: no-store on login responses.
  The session token is rotated on every successful login.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, MessageResponse, RegisterRequest, UserInfoResponse, UserResponse
from auth.dependencies import AllowedRoles, Authorize, authenticate
from auth.models import UserInfo
from auth.service import AuthService
from auth.sessions import SessionManager, get_session
from core.config import get_settings
from users.service import UserService

logger = logging.getLogger("usergate.api")

# Auth policy:
# - POST   /auth/register: public
# - POST   /auth/login:    public -- login endpoint must be unauthenticated
# - DELETE /auth/logout:   public -- ending a session needs no prior auth
# - GET    /auth/me:       authenticate + any role
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create a new ACTIVE user.

    400 for an invalid body or unknown role, 409 if the email belongs to a
    non-deleted user.
    """
    logger.info("Registration request for email: %s", body.email)
    user_service: UserService = request.app.state.user_service
    user = user_service.create(
        account_id=str(body.account_id),
        branch_id=str(body.branch_id) if body.branch_id else None,
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
    )
    logger.info("User registered successfully")
    return UserResponse.from_user(user)


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(get_settings().login_rate_limit)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Verify credentials and store the identity view in a fresh session.

    Errors from AuthService (ValidationError, InvalidCredentials,
    Unauthorized) propagate to the ApiError handler in api/main.py, which
    marks every error response Cache-Control: no-store.
    """
    logger.info("Login request for email: %s", body.email)
    auth_service: AuthService = request.app.state.auth_service
    user = auth_service.login(body.email, body.password)
    SessionManager.login(get_session(request), user)

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(message="Logged in", user=UserInfoResponse.from_info(user)).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.delete("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> MessageResponse:
    """Remove the session user. Succeeds whether or not anyone was logged in."""
    removed = SessionManager.logout(get_session(request))
    if removed is not None:
        logger.info("User logged out successfully: %s", removed.email)
    return MessageResponse(message="Logged out")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/auth/me",
    response_model=UserInfoResponse,
    dependencies=[Depends(authenticate), Depends(Authorize(AllowedRoles.any()))],
)
def me(user: UserInfo = Depends(authenticate)) -> UserInfoResponse:
    """Return the identity stored in the caller's session."""
    return UserInfoResponse.from_info(user)
