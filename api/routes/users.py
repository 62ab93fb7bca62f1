"""
api/routes/users.py -- User management endpoints.

Every route on this router requires a logged-in session (router-level
authenticate dependency). Each route then declares the roles it admits:

  GET    /users                         MANAGEMENT
  POST   /users                         MANAGEMENT
  GET    /users/{id}                    any role
  PUT    /users/{id}                    MANAGEMENT
  DELETE /users/{id}                    ROOT
  POST   /users/{id}/deactivate         SENIOR_MANAGEMENT
  POST   /users/{id}/activate           SENIOR_MANAGEMENT
  GET    /users/account/{account_id}    MANAGEMENT
  GET    /users/branch/{branch_id}      MANAGEMENT
  GET    /users/role/{role}             MANAGEMENT
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, RegisterRequest, UserResponse, UserUpdate
from auth.dependencies import AllowedRoles, Authorize, authenticate
from auth.models import Role
from users.service import UserService

logger = logging.getLogger("usergate.api")

MANAGEMENT = AllowedRoles.of(Role.ROOT, Role.GENERAL_MANAGER, Role.MANAGER)
SENIOR_MANAGEMENT = AllowedRoles.of(Role.ROOT, Role.GENERAL_MANAGER)
ROOT_ONLY = AllowedRoles.of(Role.ROOT)
ANY_ROLE = AllowedRoles.any()

router = APIRouter(prefix="/users", dependencies=[Depends(authenticate)])


def _service(request: Request) -> UserService:
    return request.app.state.user_service


@router.get("", response_model=list[UserResponse], dependencies=[Depends(Authorize(MANAGEMENT))])
def get_all(request: Request) -> list[UserResponse]:
    logger.info("Fetching all users")
    return [UserResponse.from_user(u) for u in _service(request).get_all()]


@router.post("", response_model=UserResponse, status_code=201, dependencies=[Depends(Authorize(MANAGEMENT))])
def create(request: Request, body: RegisterRequest) -> UserResponse:
    logger.info("Creating new user: %s", body.email)
    user = _service(request).create(
        account_id=str(body.account_id),
        branch_id=str(body.branch_id) if body.branch_id else None,
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
    )
    return UserResponse.from_user(user)


@router.get("/account/{account_id}", response_model=list[UserResponse], dependencies=[Depends(Authorize(MANAGEMENT))])
def get_by_account_id(request: Request, account_id: UUID) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in _service(request).get_by_account_id(str(account_id))]


@router.get("/branch/{branch_id}", response_model=list[UserResponse], dependencies=[Depends(Authorize(MANAGEMENT))])
def get_by_branch_id(request: Request, branch_id: UUID) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in _service(request).get_by_branch_id(str(branch_id))]


@router.get("/role/{role}", response_model=list[UserResponse], dependencies=[Depends(Authorize(MANAGEMENT))])
def get_by_role(request: Request, role: str) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in _service(request).get_by_role(role)]


@router.get("/{user_id}", response_model=UserResponse, dependencies=[Depends(Authorize(ANY_ROLE))])
def get_by_id(request: Request, user_id: UUID) -> UserResponse:
    logger.info("Fetching user with ID: %s", user_id)
    return UserResponse.from_user(_service(request).get_by_id(str(user_id)))


@router.put("/{user_id}", response_model=UserResponse, dependencies=[Depends(Authorize(MANAGEMENT))])
def update(request: Request, user_id: UUID, body: UserUpdate) -> UserResponse:
    user = _service(request).update(
        str(user_id),
        branch_id=str(body.branch_id) if body.branch_id else None,
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
        status=body.status,
    )
    return UserResponse.from_user(user)


@router.delete("/{user_id}", response_model=MessageResponse, dependencies=[Depends(Authorize(ROOT_ONLY))])
def delete_user(request: Request, user_id: UUID) -> MessageResponse:
    _service(request).delete(str(user_id))
    return MessageResponse(message="User deleted")


@router.post(
    "/{user_id}/deactivate", response_model=MessageResponse, dependencies=[Depends(Authorize(SENIOR_MANAGEMENT))]
)
def deactivate_user(request: Request, user_id: UUID) -> MessageResponse:
    _service(request).deactivate(str(user_id))
    return MessageResponse(message="User deactivated")


@router.post(
    "/{user_id}/activate", response_model=MessageResponse, dependencies=[Depends(Authorize(SENIOR_MANAGEMENT))]
)
def activate_user(request: Request, user_id: UUID) -> MessageResponse:
    _service(request).activate(str(user_id))
    return MessageResponse(message="User activated")
