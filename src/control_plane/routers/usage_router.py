from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request

from control_plane.auth.dependencies import get_principal, require_role
from control_plane.auth.models import Principal
from control_plane.domain.entities.identity import Role
from control_plane.domain.entities.usage import Environment, UsageGroupBy, UsageRecordRequest
from control_plane.services.usage_service import UsageService
from control_plane.utils.response import success

router = APIRouter(prefix="/usage", tags=["usage"])


def _service(request: Request) -> UsageService:
    return request.app.state.usage_service


@router.post("/record", status_code=201)
async def record_usage(
    request: Request,
    body: UsageRecordRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).record(principal, body)
    return success(data, message="usage recorded")


@router.get("/tenant/{tenant_id}")
async def usage_summary(
    request: Request,
    tenant_id: str,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    product_key: str | None = None,
    environment: Environment | None = None,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).summary(
        principal,
        tenant_id,
        period_start=period_start,
        period_end=period_end,
        product_key=product_key,
        environment=environment.value if environment else None,
    )
    return success(data)


@router.get("/global")
async def global_usage(
    request: Request,
    period_start: datetime | None = None,
    period_end: datetime | None = None,
    product_key: str | None = None,
    environment: Environment | None = None,
    group_by: UsageGroupBy = UsageGroupBy.PRODUCT_KEY,
    principal: Principal = Depends(require_role(Role.PLATFORM_ADMIN)),
) -> dict:
    data = await _service(request).global_usage(
        principal,
        period_start=period_start,
        period_end=period_end,
        product_key=product_key,
        environment=environment.value if environment else None,
        group_by=group_by,
    )
    return success(data)
