from __future__ import annotations

from typing import Any

from control_plane.auth.models import Principal
from control_plane.auth.resolver import PARTNER_SCOPE_ROLES, TenantAccessResolver
from control_plane.configs.logging_config import get_logger
from control_plane.configs.settings import Settings
from control_plane.domain.entities.identity import Role
from control_plane.domain.entities.tenancy import (
    PartnerStatus,
    Tenant,
    TenantCreateRequest,
    TenantStatus,
)
from control_plane.errors import (
    AppError,
    ErrorCode,
    ForbiddenError,
    LimitExceededError,
)
from control_plane.repositories.domain_repository import DomainRepository
from control_plane.repositories.identity_repository import IdentityRepository
from control_plane.repositories.partner_repository import PartnerRepository
from control_plane.repositories.plan_repository import PlanRepository
from control_plane.repositories.redis_client import HostnameCache
from control_plane.repositories.tenant_repository import TenantRepository
from control_plane.services.scope import TenantScope
from control_plane.utils.time_utils import dt_to_iso, utc_now

log = get_logger(__name__)


def tenant_out(tenant: Tenant) -> dict[str, Any]:
    return {
        "id": tenant.id,
        "partner_id": tenant.partner_id,
        "name": tenant.name,
        "tenant_type": tenant.tenant_type.value,
        "status": tenant.status.value,
        "created_at": dt_to_iso(tenant.created_at),
        "updated_at": dt_to_iso(tenant.updated_at),
    }


class TenantService:
    def __init__(
        self,
        tenant_repo: TenantRepository,
        partner_repo: PartnerRepository,
        identity_repo: IdentityRepository,
        domain_repo: DomainRepository,
        plan_repo: PlanRepository,
        resolver: TenantAccessResolver,
        scope: TenantScope,
        hostname_cache: HostnameCache | None,
        settings: Settings,
    ):
        self._tenants = tenant_repo
        self._partners = partner_repo
        self._identity = identity_repo
        self._domains = domain_repo
        self._plans = plan_repo
        self._resolver = resolver
        self._scope = scope
        self._cache = hostname_cache
        self._settings = settings

    async def list_tenants(
        self,
        principal: Principal,
        *,
        page: int,
        page_size: int,
        partner_id: str | None,
        status: str | None,
        tenant_type: str | None,
    ) -> tuple[list[dict[str, Any]], int]:
        tenant_ids = await self._scope.visible_tenant_ids(principal)
        tenants, total = await self._tenants.list(
            tenant_ids=tenant_ids,
            partner_id=partner_id,
            status=status,
            tenant_type=tenant_type,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        log.info(
            "svc.tenant.list user_id=%s returned=%s total=%s", principal.id, len(tenants), total
        )
        return [tenant_out(t) for t in tenants], total

    async def create_tenant(self, principal: Principal, req: TenantCreateRequest) -> dict[str, Any]:
        partner = await self._partners.find(req.partner_id)
        if partner is None or partner.status is not PartnerStatus.ACTIVE:
            raise AppError(
                "partner not found or not active", code=ErrorCode.RESOURCE_NOT_FOUND
            )

        if principal.primary_role is Role.PARTNER_ADMIN:
            await self._require_partner_admin_of(principal, req.partner_id)

        count = await self._tenants.count_by_partner(req.partner_id)
        if count >= self._settings.max_tenants_per_partner:
            log.info(
                "svc.tenant.create limit_reached partner_id=%s count=%s", req.partner_id, count
            )
            raise LimitExceededError(
                f"partner has reached the maximum of {self._settings.max_tenants_per_partner} tenants",
                code=ErrorCode.TENANT_LIMIT_EXCEEDED,
            )

        tenant = await self._tenants.insert(
            tenant_id=req.id,
            partner_id=req.partner_id,
            name=req.name,
            tenant_type=req.tenant_type,
        )
        log.info(
            "svc.tenant.create tenant_id=%s partner_id=%s created_by=%s",
            tenant.id,
            tenant.partner_id,
            principal.id,
        )
        return tenant_out(tenant)

    async def get_config(self, principal: Principal, tenant_id: str) -> dict[str, Any]:
        await self._resolver.require_tenant_access(principal, tenant_id)
        tenant = await self._tenants.get(tenant_id)
        domains = await self._domains.list_for_tenant(tenant_id)
        current = await self._plans.current_for_tenant(tenant_id, utc_now())

        plan: dict[str, Any] | None = None
        if current is not None:
            assignment, p = current
            plan = {
                "id": p.id,
                "key": p.key,
                "name": p.name,
                "limits": p.limits,
                "effective_from": dt_to_iso(assignment.effective_from),
                "effective_to": dt_to_iso(assignment.effective_to),
            }

        out = tenant_out(tenant)
        out["domains"] = [
            {"id": d.id, "hostname": d.hostname, "status": d.status.value} for d in domains
        ]
        out["plan"] = plan
        return out

    async def update_status(
        self, principal: Principal, tenant_id: str, status: TenantStatus
    ) -> dict[str, Any]:
        if principal.primary_role not in (Role.PLATFORM_ADMIN, Role.PARTNER_ADMIN):
            raise ForbiddenError("insufficient permissions")
        await self._resolver.require_tenant_access(principal, tenant_id)

        tenant = await self._tenants.update_status(tenant_id, status)
        if self._cache is not None:
            for domain in await self._domains.list_for_tenant(tenant_id):
                await self._cache.invalidate(domain.hostname)
        log.info(
            "svc.tenant.update_status tenant_id=%s status=%s updated_by=%s",
            tenant_id,
            status.value,
            principal.id,
        )
        return tenant_out(tenant)

    async def _require_partner_admin_of(self, principal: Principal, partner_id: str) -> None:
        for membership in await self._identity.list_memberships(
            principal.id, roles=PARTNER_SCOPE_ROLES
        ):
            if await self._tenants.partner_of(membership.tenant_id) == partner_id:
                return
        log.info(
            "svc.tenant.create denied user_id=%s partner_id=%s", principal.id, partner_id
        )
        raise ForbiddenError("access denied to this partner")
