from __future__ import annotations

from typing import Iterable

from control_plane.domain.entities.identity import Membership, Role
from control_plane.repositories.identity_repository import IdentityRepository
from control_plane.repositories.tenant_repository import TenantRepository


class MongoAccessDirectory:
    """
    Store-backed lookups for the tenant access resolver.

    Every call reads Mongo directly; no caching.
    """

    def __init__(self, identity_repo: IdentityRepository, tenant_repo: TenantRepository):
        self._identity = identity_repo
        self._tenants = tenant_repo

    async def find_membership(
        self,
        user_id: str,
        tenant_id: str | None = None,
        roles: Iterable[Role] | None = None,
    ) -> Membership | None:
        return await self._identity.find_membership(user_id, tenant_id=tenant_id, roles=roles)

    async def list_memberships(
        self, user_id: str, roles: Iterable[Role] | None = None
    ) -> list[Membership]:
        return await self._identity.list_memberships(user_id, roles=roles)

    async def find_partner_tenants(self, partner_id: str) -> list[str]:
        return await self._tenants.partner_tenant_ids(partner_id)

    async def find_tenant_partner(self, tenant_id: str) -> str | None:
        return await self._tenants.partner_of(tenant_id)
