from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from control_plane.auth.dependencies import get_principal, require_role
from control_plane.auth.models import Principal
from control_plane.domain.entities.identity import Role
from control_plane.domain.entities.tenancy import (
    PartnerCreateRequest,
    PartnerStatus,
    PartnerStatusRequest,
    PartnerUpdateRequest,
)
from control_plane.services.partner_service import PartnerService
from control_plane.utils.response import paginated, success

router = APIRouter(prefix="/partners", tags=["partners"])


def _service(request: Request) -> PartnerService:
    return request.app.state.partner_service


@router.get("")
async def list_partners(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: PartnerStatus | None = None,
    principal: Principal = Depends(get_principal),
) -> dict:
    data, total = await _service(request).list_partners(
        principal,
        page=page,
        page_size=page_size,
        status=status.value if status else None,
    )
    return paginated(data, total=total, page=page, page_size=page_size)


@router.post("", status_code=201)
async def create_partner(
    request: Request,
    body: PartnerCreateRequest,
    principal: Principal = Depends(require_role(Role.PLATFORM_ADMIN)),
) -> dict:
    data = await _service(request).create_partner(principal, body)
    return success(data, message="partner created")


@router.get("/{partner_id}")
async def get_partner(
    request: Request,
    partner_id: str,
    principal: Principal = Depends(get_principal),
) -> dict:
    return success(await _service(request).get_partner(principal, partner_id))


@router.put("/{partner_id}")
async def update_partner(
    request: Request,
    partner_id: str,
    body: PartnerUpdateRequest,
    principal: Principal = Depends(require_role(Role.PLATFORM_ADMIN)),
) -> dict:
    data = await _service(request).update_partner(principal, partner_id, body)
    return success(data, message="partner updated")


@router.patch("/{partner_id}/status")
async def update_partner_status(
    request: Request,
    partner_id: str,
    body: PartnerStatusRequest,
    principal: Principal = Depends(require_role(Role.PLATFORM_ADMIN)),
) -> dict:
    data = await _service(request).update_status(principal, partner_id, body.status)
    return success(data, message="partner status updated")
