from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.tenancy import DomainStatus, PartnerStatus, TenantStatus
from control_plane.repositories.domain_repository import DomainRepository
from control_plane.repositories.partner_repository import PartnerRepository
from control_plane.repositories.tenant_repository import TenantRepository
from control_plane.repositories.usage_repository import UsageRepository
from control_plane.utils.time_utils import dt_to_iso, month_bounds, utc_now

log = get_logger(__name__)

RECENT_ACTIVITY_LIMIT = 5


class AdminService:
    """Read models behind the admin console dashboard."""

    def __init__(
        self,
        partner_repo: PartnerRepository,
        tenant_repo: TenantRepository,
        domain_repo: DomainRepository,
        usage_repo: UsageRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._partners = partner_repo
        self._tenants = tenant_repo
        self._domains = domain_repo
        self._usage = usage_repo
        self._clock = clock

    async def dashboard_stats(self) -> dict[str, Any]:
        month_start, _ = month_bounds(self._clock())
        stats = {
            "total_partners": await self._partners.count(status=PartnerStatus.ACTIVE.value),
            "total_tenants": await self._tenants.count(status=TenantStatus.ACTIVE.value),
            "active_domains": await self._domains.count(status=DomainStatus.VERIFIED.value),
            "this_month_signups": await self._tenants.count(created_since=month_start),
            "total_usage_events": await self._usage.count(),
        }
        log.info("svc.admin.dashboard_stats stats=%s", stats)
        return stats

    async def recent_activity(self, limit: int = RECENT_ACTIVITY_LIMIT) -> dict[str, Any]:
        partners = await self._partners.recent(limit)
        tenants = await self._tenants.recent(limit)
        domains = await self._domains.recent(limit)

        partner_names = await self._partners.names_of(sorted({t.partner_id for t in tenants}))
        domain_tenants = await self._tenants.find_many(sorted({d.tenant_id for d in domains}))

        return {
            "recent_partners": [
                {
                    "id": p.id,
                    "name": p.name,
                    "status": p.status.value,
                    "tenant_count": await self._tenants.count_by_partner(p.id),
                    "created_at": dt_to_iso(p.created_at),
                }
                for p in partners
            ],
            "recent_tenants": [
                {
                    "id": t.id,
                    "name": t.name,
                    "tenant_type": t.tenant_type.value,
                    "partner_name": partner_names.get(t.partner_id),
                    "domain_count": await self._domains.count_by_tenant(t.id),
                    "created_at": dt_to_iso(t.created_at),
                }
                for t in tenants
            ],
            "recent_domains": [
                {
                    "id": d.id,
                    "hostname": d.hostname,
                    "tenant_name": getattr(domain_tenants.get(d.tenant_id), "name", None),
                    "status": d.status.value,
                    "created_at": dt_to_iso(d.created_at),
                    "verified_at": dt_to_iso(d.verified_at),
                }
                for d in domains
            ],
        }
