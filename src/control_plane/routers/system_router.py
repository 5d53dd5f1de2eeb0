from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from control_plane.auth.dependencies import get_principal, require_role
from control_plane.auth.models import Principal
from control_plane.domain.entities.identity import Role
from control_plane.domain.entities.system import MaintenanceRequest
from control_plane.services.system_service import SystemService
from control_plane.utils.response import success

# PLATFORM_ADMIN only, on top of the system:* permission
router = APIRouter(
    prefix="/system",
    tags=["system"],
    dependencies=[Depends(require_role(Role.PLATFORM_ADMIN))],
)


def _service(request: Request) -> SystemService:
    return request.app.state.system_service


@router.get("/info")
async def system_info(request: Request) -> dict:
    return success(_service(request).info())


@router.get("/metrics")
async def system_metrics(request: Request) -> dict:
    return success(await _service(request).metrics())


@router.post("/maintenance")
async def toggle_maintenance(
    request: Request,
    body: MaintenanceRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = _service(request).set_maintenance(principal, body)
    return success(data, message="maintenance mode updated")
