from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from control_plane.auth.dependencies import get_principal, require_role
from control_plane.auth.models import Principal
from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.identity import (
    AddMembershipRequest,
    CreateUserRequest,
    LoginRequest,
    Role,
)
from control_plane.services.auth_service import AuthService
from control_plane.utils.response import success

log = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


@router.post("/login")
async def login(request: Request, body: LoginRequest) -> dict:
    data = await _service(request).login(body)
    return success(data, message="login successful")


@router.post("/users", status_code=201)
async def create_user(
    request: Request,
    body: CreateUserRequest,
    principal: Principal = Depends(require_role(Role.PLATFORM_ADMIN)),
) -> dict:
    data = await _service(request).create_user(body, created_by=principal)
    return success(data, message="user created")


@router.post("/users/{user_id}/memberships", status_code=201)
async def add_membership(
    request: Request,
    user_id: str,
    body: AddMembershipRequest,
    principal: Principal = Depends(require_role(Role.PLATFORM_ADMIN)),
) -> dict:
    data = await _service(request).add_membership(user_id, body, created_by=principal)
    return success(data, message="membership added")


@router.get("/me")
async def me(principal: Principal = Depends(get_principal)) -> dict:
    return success(AuthService.me(principal))
