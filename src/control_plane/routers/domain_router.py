from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from control_plane.auth.dependencies import get_principal
from control_plane.auth.models import Principal
from control_plane.domain.entities.tenancy import (
    DomainCreateRequest,
    DomainStatus,
    DomainUpdateRequest,
)
from control_plane.services.domain_service import DomainService
from control_plane.utils.response import paginated, success

router = APIRouter(prefix="/domains", tags=["domains"])


def _service(request: Request) -> DomainService:
    return request.app.state.domain_service


# Declared before `/{domain_id}` routes; public (no bearer token).
@router.get("/resolve")
async def resolve_hostname(request: Request, hostname: str = Query(..., min_length=1)) -> dict:
    return success(await _service(request).resolve_hostname(hostname))


@router.get("")
async def list_domains(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    tenant_id: str | None = None,
    status: DomainStatus | None = None,
    hostname: str | None = None,
    principal: Principal = Depends(get_principal),
) -> dict:
    data, total = await _service(request).list_domains(
        principal,
        page=page,
        page_size=page_size,
        tenant_id=tenant_id,
        status=status.value if status else None,
        hostname=hostname,
    )
    return paginated(data, total=total, page=page, page_size=page_size)


@router.post("", status_code=201)
async def create_domain(
    request: Request,
    body: DomainCreateRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).create_domain(principal, body)
    return success(data, message="domain created")


@router.post("/{domain_id}/verify")
async def verify_domain(
    request: Request,
    domain_id: str,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).verify_domain(principal, domain_id)
    return success(data, message="domain verification completed")


@router.put("/{domain_id}")
async def update_domain(
    request: Request,
    domain_id: str,
    body: DomainUpdateRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).update_domain(principal, domain_id, body)
    return success(data, message="domain updated")
