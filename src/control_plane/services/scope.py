from __future__ import annotations

from control_plane.auth.models import Principal
from control_plane.auth.resolver import PARTNER_SCOPE_ROLES
from control_plane.domain.entities.identity import Role
from control_plane.repositories.tenant_repository import TenantRepository


class TenantScope:
    """
    List filters matching what the tenant access resolver lets a principal reach.

    None means unrestricted (platform admin).
    """

    def __init__(self, tenant_repo: TenantRepository):
        self._tenants = tenant_repo

    async def visible_tenant_ids(self, principal: Principal) -> list[str] | None:
        if principal.primary_role is Role.PLATFORM_ADMIN:
            return None
        own = list(principal.tenant_ids)
        if principal.primary_role is not Role.PARTNER_ADMIN:
            return own

        seen = set(own)
        out = own
        for partner_id in await self._partner_admin_partner_ids(principal):
            for tenant_id in await self._tenants.partner_tenant_ids(partner_id):
                if tenant_id not in seen:
                    seen.add(tenant_id)
                    out.append(tenant_id)
        return out

    async def visible_partner_ids(self, principal: Principal) -> list[str] | None:
        if principal.primary_role is Role.PLATFORM_ADMIN:
            return None
        return await self._tenants.partner_ids_of(list(principal.tenant_ids))

    async def _partner_admin_partner_ids(self, principal: Principal) -> list[str]:
        tenant_ids = [
            m.tenant_id for m in principal.tenant_memberships if m.role in PARTNER_SCOPE_ROLES
        ]
        if not tenant_ids:
            return []
        return await self._tenants.partner_ids_of(tenant_ids)
