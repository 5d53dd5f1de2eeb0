from __future__ import annotations

from typing import Any

from control_plane.auth.models import Principal
from control_plane.auth.resolver import TenantAccessResolver
from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.tenancy import (
    Plan,
    PlanAttachRequest,
    PlanCreateRequest,
    PlanUpdateRequest,
    TenantPlan,
)
from control_plane.errors import NotFoundError
from control_plane.repositories.plan_repository import PlanRepository
from control_plane.repositories.tenant_repository import TenantRepository
from control_plane.utils.time_utils import dt_to_iso, ensure_utc, utc_now

log = get_logger(__name__)


def plan_out(plan: Plan) -> dict[str, Any]:
    return {
        "id": plan.id,
        "key": plan.key,
        "name": plan.name,
        "description": plan.description,
        "limits": dict(plan.limits),
        "created_at": dt_to_iso(plan.created_at),
        "updated_at": dt_to_iso(plan.updated_at),
    }


def assignment_out(assignment: TenantPlan, plan: Plan) -> dict[str, Any]:
    return {
        "id": assignment.id,
        "tenant_id": assignment.tenant_id,
        "plan": plan_out(plan),
        "effective_from": dt_to_iso(assignment.effective_from),
        "effective_to": dt_to_iso(assignment.effective_to),
    }


class PlanService:
    def __init__(
        self,
        plan_repo: PlanRepository,
        tenant_repo: TenantRepository,
        resolver: TenantAccessResolver,
    ):
        self._plans = plan_repo
        self._tenants = tenant_repo
        self._resolver = resolver

    async def list_plans(self, *, page: int, page_size: int) -> tuple[list[dict[str, Any]], int]:
        plans, total = await self._plans.list(skip=(page - 1) * page_size, limit=page_size)
        return [plan_out(p) for p in plans], total

    async def create_plan(self, principal: Principal, req: PlanCreateRequest) -> dict[str, Any]:
        plan = await self._plans.insert(
            key=req.key, name=req.name, description=req.description, limits=req.limits
        )
        log.info("svc.plan.create plan_id=%s key=%s created_by=%s", plan.id, plan.key, principal.id)
        return plan_out(plan)

    async def get_plan(self, plan_id: str) -> dict[str, Any]:
        return plan_out(await self._plans.get(plan_id))

    async def update_plan(
        self, principal: Principal, plan_id: str, req: PlanUpdateRequest
    ) -> dict[str, Any]:
        updates = req.model_dump(exclude_none=True)
        if not updates:
            return plan_out(await self._plans.get(plan_id))
        plan = await self._plans.update(plan_id, updates)
        log.info(
            "svc.plan.update plan_id=%s keys=%s updated_by=%s",
            plan_id,
            sorted(updates.keys()),
            principal.id,
        )
        return plan_out(plan)

    async def attach_plan(self, principal: Principal, req: PlanAttachRequest) -> dict[str, Any]:
        await self._resolver.require_tenant_access(principal, req.tenant_id)
        await self._tenants.get(req.tenant_id)
        plan = await self._plans.get(req.plan_id)

        effective_from = ensure_utc(req.effective_from) if req.effective_from else utc_now()
        assignment = await self._plans.attach(
            tenant_id=req.tenant_id, plan_id=plan.id, effective_from=effective_from
        )
        log.info(
            "svc.plan.attach tenant_id=%s plan_id=%s attached_by=%s",
            req.tenant_id,
            plan.id,
            principal.id,
        )
        return assignment_out(assignment, plan)

    async def current_plan(self, principal: Principal, tenant_id: str) -> dict[str, Any]:
        await self._resolver.require_tenant_access(principal, tenant_id)
        current = await self._plans.current_for_tenant(tenant_id, utc_now())
        if current is None:
            raise NotFoundError("no plan attached to this tenant")
        assignment, plan = current
        return assignment_out(assignment, plan)
