from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from control_plane.auth.dependencies import get_principal
from control_plane.auth.models import Principal
from control_plane.domain.entities.tenancy import (
    PlanAttachRequest,
    PlanCreateRequest,
    PlanUpdateRequest,
)
from control_plane.services.plan_service import PlanService
from control_plane.utils.response import paginated, success

router = APIRouter(prefix="/plans", tags=["plans"])


def _service(request: Request) -> PlanService:
    return request.app.state.plan_service


@router.get("")
async def list_plans(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> dict:
    data, total = await _service(request).list_plans(page=page, page_size=page_size)
    return paginated(data, total=total, page=page, page_size=page_size)


@router.post("", status_code=201)
async def create_plan(
    request: Request,
    body: PlanCreateRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).create_plan(principal, body)
    return success(data, message="plan created")


@router.post("/attach", status_code=201)
async def attach_plan(
    request: Request,
    body: PlanAttachRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).attach_plan(principal, body)
    return success(data, message="plan attached")


@router.get("/tenant/{tenant_id}")
async def current_plan(
    request: Request,
    tenant_id: str,
    principal: Principal = Depends(get_principal),
) -> dict:
    return success(await _service(request).current_plan(principal, tenant_id))


@router.get("/{plan_id}")
async def get_plan(request: Request, plan_id: str) -> dict:
    return success(await _service(request).get_plan(plan_id))


@router.put("/{plan_id}")
async def update_plan(
    request: Request,
    plan_id: str,
    body: PlanUpdateRequest,
    principal: Principal = Depends(get_principal),
) -> dict:
    data = await _service(request).update_plan(principal, plan_id, body)
    return success(data, message="plan updated")
