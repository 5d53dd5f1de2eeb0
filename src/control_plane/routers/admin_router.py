from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from control_plane.auth.dependencies import require_role
from control_plane.domain.entities.identity import Role
from control_plane.services.admin_service import AdminService
from control_plane.utils.response import success

# /admin/dashboard* passes the middleware with usage:read; this role check keeps
# tenant users out
router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_role(Role.PLATFORM_ADMIN))],
)


def _service(request: Request) -> AdminService:
    return request.app.state.admin_service


@router.get("/dashboard-stats")
async def dashboard_stats(request: Request) -> dict:
    return success(await _service(request).dashboard_stats())


@router.get("/recent-activity")
async def recent_activity(request: Request) -> dict:
    return success(await _service(request).recent_activity())
