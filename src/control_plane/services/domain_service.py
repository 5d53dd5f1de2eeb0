from __future__ import annotations

from typing import Any

from control_plane.auth.models import Principal
from control_plane.auth.resolver import TenantAccessResolver
from control_plane.configs.logging_config import get_logger
from control_plane.configs.settings import Settings
from control_plane.domain.entities.tenancy import (
    Domain,
    DomainCreateRequest,
    DomainStatus,
    DomainUpdateRequest,
    TenantStatus,
    hostname_problem,
)
from control_plane.errors import (
    AppError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    LimitExceededError,
    NotFoundError,
)
from control_plane.repositories.domain_repository import DomainRepository
from control_plane.repositories.redis_client import HostnameCache
from control_plane.repositories.tenant_repository import TenantRepository
from control_plane.services.scope import TenantScope
from control_plane.utils.time_utils import dt_to_iso, utc_now
from control_plane.webclient.domain_verifier import DomainVerifier

log = get_logger(__name__)


def domain_out(domain: Domain) -> dict[str, Any]:
    return {
        "id": domain.id,
        "tenant_id": domain.tenant_id,
        "hostname": domain.hostname,
        "status": domain.status.value,
        "verified_at": dt_to_iso(domain.verified_at),
        "last_verified_at": dt_to_iso(domain.last_verified_at),
        "verification_errors": list(domain.verification_errors),
        "redirect_rules": domain.redirect_rules,
        "ssl_config": domain.ssl_config,
        "created_at": dt_to_iso(domain.created_at),
        "updated_at": dt_to_iso(domain.updated_at),
    }


class DomainService:
    def __init__(
        self,
        domain_repo: DomainRepository,
        tenant_repo: TenantRepository,
        resolver: TenantAccessResolver,
        scope: TenantScope,
        verifier: DomainVerifier,
        hostname_cache: HostnameCache | None,
        settings: Settings,
    ):
        self._domains = domain_repo
        self._tenants = tenant_repo
        self._resolver = resolver
        self._scope = scope
        self._verifier = verifier
        self._cache = hostname_cache
        self._settings = settings

    async def list_domains(
        self,
        principal: Principal,
        *,
        page: int,
        page_size: int,
        tenant_id: str | None,
        status: str | None,
        hostname: str | None,
    ) -> tuple[list[dict[str, Any]], int]:
        if tenant_id:
            await self._resolver.require_tenant_access(principal, tenant_id)
            tenant_ids: list[str] | None = [tenant_id]
        else:
            tenant_ids = await self._scope.visible_tenant_ids(principal)
        domains, total = await self._domains.list(
            tenant_ids=tenant_ids,
            status=status,
            hostname_contains=hostname,
            skip=(page - 1) * page_size,
            limit=page_size,
        )
        log.info(
            "svc.domain.list user_id=%s returned=%s total=%s", principal.id, len(domains), total
        )
        return [domain_out(d) for d in domains], total

    async def create_domain(self, principal: Principal, req: DomainCreateRequest) -> dict[str, Any]:
        await self._resolver.require_tenant_access(principal, req.tenant_id)

        problem = hostname_problem(req.hostname)
        if problem is not None:
            log.info("svc.domain.create rejected hostname=%s reason=%s", req.hostname, problem)
            raise AppError(problem, code=ErrorCode.INVALID_FORMAT)

        tenant = await self._tenants.find(req.tenant_id)
        if tenant is None or tenant.status is not TenantStatus.ACTIVE:
            raise AppError("tenant not found or not active", code=ErrorCode.RESOURCE_NOT_FOUND)

        if await self._domains.find_by_hostname(req.hostname) is not None:
            raise ConflictError("hostname already registered")

        count = await self._domains.count_by_tenant(req.tenant_id)
        if count >= self._settings.max_domains_per_tenant:
            log.info("svc.domain.create limit_reached tenant_id=%s count=%s", req.tenant_id, count)
            raise LimitExceededError(
                f"tenant has reached the maximum of {self._settings.max_domains_per_tenant} domains",
                code=ErrorCode.DOMAIN_LIMIT_EXCEEDED,
            )

        domain = await self._domains.insert(tenant_id=req.tenant_id, hostname=req.hostname)
        log.info(
            "svc.domain.create domain_id=%s tenant_id=%s hostname=%s created_by=%s",
            domain.id,
            domain.tenant_id,
            domain.hostname,
            principal.id,
        )
        out = domain_out(domain)
        out["verification"] = {
            "url": self._verifier.url_for(domain.hostname),
            "token": self._verifier.expected_token(domain),
        }
        return out

    async def verify_domain(self, principal: Principal, domain_id: str) -> dict[str, Any]:
        domain = await self._accessible_domain(principal, domain_id)

        errors = await self._verifier.verify(domain)
        now = utc_now()
        updates: dict[str, Any] = {"last_verified_at": now, "verification_errors": errors}
        if errors:
            updates["status"] = DomainStatus.FAILED.value
        else:
            updates["status"] = DomainStatus.VERIFIED.value
            updates["verified_at"] = now

        domain = await self._domains.update(domain_id, updates)
        await self._invalidate(domain.hostname)
        log.info(
            "svc.domain.verify domain_id=%s status=%s errors=%s",
            domain_id,
            domain.status.value,
            len(errors),
        )
        return domain_out(domain)

    async def update_domain(
        self, principal: Principal, domain_id: str, req: DomainUpdateRequest
    ) -> dict[str, Any]:
        domain = await self._accessible_domain(principal, domain_id)

        updates = req.model_dump(exclude_none=True, mode="json")
        if not updates:
            return domain_out(domain)
        domain = await self._domains.update(domain_id, updates)
        if "status" in updates:
            await self._invalidate(domain.hostname)
        log.info(
            "svc.domain.update domain_id=%s keys=%s updated_by=%s",
            domain_id,
            sorted(updates.keys()),
            principal.id,
        )
        return domain_out(domain)

    async def resolve_hostname(self, hostname: str) -> dict[str, Any]:
        """Public lookup: a verified domain of an active tenant, or 404."""
        hostname = hostname.strip().lower()
        if self._cache is not None:
            cached = await self._cache.get(hostname)
            if cached is not None:
                log.info("svc.domain.resolve cache_hit hostname=%s", hostname)
                return cached

        domain = await self._domains.find_by_hostname(hostname)
        if domain is None or domain.status is not DomainStatus.VERIFIED:
            raise NotFoundError("domain not found or not verified")
        tenant = await self._tenants.find(domain.tenant_id)
        if tenant is None or tenant.status is not TenantStatus.ACTIVE:
            raise NotFoundError("tenant not found or not active")

        out = {
            "hostname": domain.hostname,
            "domain_id": domain.id,
            "tenant": {
                "id": tenant.id,
                "name": tenant.name,
                "tenant_type": tenant.tenant_type.value,
                "partner_id": tenant.partner_id,
            },
            "redirect_rules": domain.redirect_rules,
        }
        if self._cache is not None:
            await self._cache.set(hostname, out)
        log.info("svc.domain.resolve hostname=%s tenant_id=%s", hostname, tenant.id)
        return out

    async def _invalidate(self, hostname: str) -> None:
        if self._cache is not None:
            await self._cache.invalidate(hostname)

    async def _accessible_domain(self, principal: Principal, domain_id: str) -> Domain:
        """
        Load a domain the principal may act on.

        Outside the platform admin role, an unknown id and a domain of another
        tenant both raise the same ForbiddenError.
        """
        try:
            domain = await self._domains.get(domain_id)
        except NotFoundError:
            if principal.is_platform_admin:
                raise
            domain = None
        if domain is None or not await self._resolver.can_access_tenant(
            principal, domain.tenant_id
        ):
            log.info("svc.domain.access denied user_id=%s domain_id=%s", principal.id, domain_id)
            raise ForbiddenError("access denied to this domain")
        return domain
