from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from control_plane.auth.dependencies import get_principal, require_role
from control_plane.auth.models import Principal
from control_plane.domain.entities.identity import Role
from control_plane.domain.entities.tenancy import (
    TenantCreateRequest,
    TenantStatus,
    TenantStatusRequest,
    TenantType,
)
from control_plane.services.tenant_service import TenantService
from control_plane.utils.response import paginated, success

router = APIRouter(prefix="/tenants", tags=["tenants"])


def _service(request: Request) -> TenantService:
    return request.app.state.tenant_service


@router.get("")
async def list_tenants(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    partner_id: str | None = None,
    status: TenantStatus | None = None,
    tenant_type: TenantType | None = None,
    principal: Principal = Depends(get_principal),
) -> dict:
    data, total = await _service(request).list_tenants(
        principal,
        page=page,
        page_size=page_size,
        partner_id=partner_id,
        status=status.value if status else None,
        tenant_type=tenant_type.value if tenant_type else None,
    )
    return paginated(data, total=total, page=page, page_size=page_size)


@router.post("", status_code=201)
async def create_tenant(
    request: Request,
    body: TenantCreateRequest,
    principal: Principal = Depends(require_role(Role.PLATFORM_ADMIN, Role.PARTNER_ADMIN)),
) -> dict:
    data = await _service(request).create_tenant(principal, body)
    return success(data, message="tenant created")


@router.get("/{tenant_id}/config")
async def get_tenant_config(
    request: Request,
    tenant_id: str,
    principal: Principal = Depends(get_principal),
) -> dict:
    return success(await _service(request).get_config(principal, tenant_id))


@router.patch("/{tenant_id}/status")
async def update_tenant_status(
    request: Request,
    tenant_id: str,
    body: TenantStatusRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).update_status(principal, tenant_id, body.status)
    return success(data, message="tenant status updated")
