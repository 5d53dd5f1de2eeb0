from __future__ import annotations

import asyncio
from typing import Iterable, Protocol

from control_plane.auth.models import Principal
from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.identity import TENANT_SCOPED_ROLES, Membership, Role
from control_plane.errors import AccessCheckError, ForbiddenError

log = get_logger(__name__)

# A stored PLATFORM_ADMIN membership scopes like a PARTNER_ADMIN one.
PARTNER_SCOPE_ROLES = frozenset({Role.PARTNER_ADMIN, Role.PLATFORM_ADMIN})


class AccessDirectory(Protocol):
    """Consistent-read view of memberships and tenant ownership."""

    async def find_membership(
        self,
        user_id: str,
        tenant_id: str | None = None,
        roles: Iterable[Role] | None = None,
    ) -> Membership | None: ...

    async def list_memberships(
        self, user_id: str, roles: Iterable[Role] | None = None
    ) -> list[Membership]: ...

    async def find_partner_tenants(self, partner_id: str) -> list[str]: ...

    async def find_tenant_partner(self, tenant_id: str) -> str | None: ...


class TenantAccessResolver:
    """
    Decides whether a principal may act on one tenant.

    PLATFORM_ADMIN reaches every tenant. PARTNER_ADMIN reaches every tenant of
    any partner in which it holds a PARTNER_ADMIN membership, so a membership in
    tenant A opens sibling tenant B of the same partner. TENANT_ADMIN and
    TENANT_USER reach exactly the tenants they are members of.

    Store failures and timeouts raise AccessCheckError; they never grant access
    and are never reported as a plain denial.
    """

    def __init__(self, directory: AccessDirectory, timeout_seconds: float = 2.0):
        self._directory = directory
        self._timeout = timeout_seconds

    async def can_access_tenant(self, principal: Principal, tenant_id: str) -> bool:
        role = principal.primary_role
        if role is Role.PLATFORM_ADMIN:
            return True
        if role is not Role.PARTNER_ADMIN and role not in TENANT_SCOPED_ROLES:
            return False

        try:
            allowed = await asyncio.wait_for(
                self._check(principal, tenant_id), timeout=self._timeout
            )
        except asyncio.TimeoutError as e:
            log.error(
                "authz.tenant_access timeout user_id=%s tenant_id=%s timeout_s=%s",
                principal.id,
                tenant_id,
                self._timeout,
            )
            raise AccessCheckError("tenant access check timed out") from e
        except Exception as e:
            log.error(
                "authz.tenant_access lookup_failed user_id=%s tenant_id=%s role=%s error=%s",
                principal.id,
                tenant_id,
                role.value,
                str(e),
                exc_info=True,
            )
            raise AccessCheckError() from e

        log.debug(
            "authz.tenant_access user_id=%s tenant_id=%s role=%s allowed=%s",
            principal.id,
            tenant_id,
            role.value,
            allowed,
        )
        return allowed

    async def require_tenant_access(self, principal: Principal, tenant_id: str) -> None:
        if not await self.can_access_tenant(principal, tenant_id):
            log.info(
                "authz.tenant_access denied user_id=%s tenant_id=%s", principal.id, tenant_id
            )
            raise ForbiddenError("access denied to this tenant")

    async def _check(self, principal: Principal, tenant_id: str) -> bool:
        if principal.primary_role is Role.PARTNER_ADMIN:
            return await self._reachable_via_partner(principal.id, tenant_id)
        membership = await self._directory.find_membership(
            principal.id, tenant_id=tenant_id, roles=TENANT_SCOPED_ROLES
        )
        return membership is not None

    async def _reachable_via_partner(self, user_id: str, tenant_id: str) -> bool:
        memberships = await self._directory.list_memberships(user_id, roles=PARTNER_SCOPE_ROLES)
        seen_partners: set[str] = set()
        for membership in memberships:
            partner_id = await self._directory.find_tenant_partner(membership.tenant_id)
            if partner_id is None or partner_id in seen_partners:
                continue
            seen_partners.add(partner_id)
            if tenant_id in await self._directory.find_partner_tenants(partner_id):
                return True
        return False
