from __future__ import annotations

import platform
import resource
import sys
import time
from datetime import datetime, timedelta
from typing import Any, Callable

from control_plane.auth.models import Principal
from control_plane.configs.logging_config import get_logger
from control_plane.configs.settings import Settings
from control_plane.domain.entities.system import MaintenanceRequest
from control_plane.repositories.domain_repository import DomainRepository
from control_plane.repositories.identity_repository import IdentityRepository
from control_plane.repositories.partner_repository import PartnerRepository
from control_plane.repositories.tenant_repository import TenantRepository
from control_plane.repositories.usage_repository import UsageRepository
from control_plane.utils.time_utils import dt_to_iso, utc_now

log = get_logger(__name__)

ACTIVE_TENANT_WINDOW = timedelta(days=7)


def version_info(settings: Settings) -> dict[str, Any]:
    return {
        "name": settings.SERVICE_NAME,
        "version": f"v{settings.RELEASE_VERSION}",
        "api_version": settings.API_VERSION,
        "build_date": settings.BUILD_DATE,
        "git_branch": settings.GIT_BRANCH,
        "git_commit": settings.GIT_COMMIT[:7],
    }


def max_rss_mb() -> int:
    # ru_maxrss is KiB on Linux, bytes on macOS
    rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    if sys.platform == "darwin":
        rss //= 1024
    return round(rss / 1024)


class SystemService:
    """
    Platform-wide introspection for PLATFORM_ADMIN.

    The maintenance flag lives in this process only; it is reported by
    `/system/info` and `/health/detailed` but does not gate traffic.
    """

    def __init__(
        self,
        settings: Settings,
        partner_repo: PartnerRepository,
        tenant_repo: TenantRepository,
        domain_repo: DomainRepository,
        identity_repo: IdentityRepository,
        usage_repo: UsageRepository,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._settings = settings
        self._partners = partner_repo
        self._tenants = tenant_repo
        self._domains = domain_repo
        self._identity = identity_repo
        self._usage = usage_repo
        self._clock = clock
        self._started = time.monotonic()
        self._maintenance: dict[str, Any] = {"enabled": False, "message": None, "changed_at": None}

    @property
    def uptime_seconds(self) -> int:
        return int(time.monotonic() - self._started)

    @property
    def maintenance(self) -> dict[str, Any]:
        return dict(self._maintenance)

    def info(self) -> dict[str, Any]:
        s = self._settings
        return {
            "service": s.SERVICE_NAME,
            "version": version_info(s)["version"],
            "environment": s.ENVIRONMENT,
            "python_version": platform.python_version(),
            "uptime_seconds": self.uptime_seconds,
            "memory_usage": {"max_rss_mb": max_rss_mb()},
            "limits": {
                "max_tenants_per_partner": s.max_tenants_per_partner,
                "max_domains_per_tenant": s.max_domains_per_tenant,
            },
            "maintenance": self.maintenance,
        }

    async def metrics(self) -> dict[str, Any]:
        now = self._clock()
        overview = {
            "total_partners": await self._partners.count(),
            "total_tenants": await self._tenants.count(),
            "total_users": await self._identity.count_users(),
            "total_domains": await self._domains.count(),
            "total_usage_records": await self._usage.count(),
        }
        active = await self._tenants.count(updated_since=now - ACTIVE_TENANT_WINDOW)
        log.info("svc.system.metrics overview=%s active_tenants_7d=%s", overview, active)
        return {
            "timestamp": dt_to_iso(now),
            "overview": overview,
            "activity": {"active_tenants_7d": active},
            "system": {
                "uptime_seconds": self.uptime_seconds,
                "memory_usage_mb": max_rss_mb(),
                "python_version": platform.python_version(),
            },
        }

    def set_maintenance(self, principal: Principal, req: MaintenanceRequest) -> dict[str, Any]:
        message = req.message or (
            "System maintenance in progress" if req.enabled else "System operational"
        )
        now = self._clock()
        self._maintenance = {
            "enabled": req.enabled,
            "message": message,
            "changed_at": dt_to_iso(now),
        }
        log.warning(
            "svc.system.maintenance enabled=%s toggled_by=%s message=%s",
            req.enabled,
            principal.id,
            message,
        )
        return {
            "maintenance_enabled": req.enabled,
            "message": message,
            "timestamp": dt_to_iso(now),
        }
