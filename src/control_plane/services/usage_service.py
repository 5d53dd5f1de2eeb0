from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from control_plane.auth.models import Principal
from control_plane.auth.resolver import TenantAccessResolver
from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.usage import (
    PRODUCT_KEY_PATTERN,
    UsageGroupBy,
    UsageMetric,
    UsageRecordRequest,
    UsageSummary,
    limit_key,
)
from control_plane.errors import AppError, ErrorCode, ForbiddenError
from control_plane.repositories.partner_repository import PartnerRepository
from control_plane.repositories.plan_repository import PlanRepository
from control_plane.repositories.tenant_repository import TenantRepository
from control_plane.repositories.usage_repository import UsageRepository
from control_plane.utils.time_utils import dt_to_iso, ensure_utc, month_bounds, utc_now

log = get_logger(__name__)

_PRODUCT_KEY_RE = re.compile(PRODUCT_KEY_PATTERN)


def percentage_used(value: int, limit: int | None) -> int | None:
    if limit is None or limit <= 0:
        return None
    return round(value * 100 / limit)


def summarize(
    tenant_id: str,
    period_start: datetime,
    period_end: datetime,
    counters: list[dict[str, Any]],
    plan_limits: dict[str, int],
) -> UsageSummary:
    """Sum counters per (product, environment, metric) and attach plan limits."""
    totals: dict[tuple[str, str, str], int] = {}
    for c in counters:
        key = (c["product_key"], c["environment"], c["metric_key"])
        totals[key] = totals.get(key, 0) + int(c.get("value", 0))

    metrics = []
    for (product_key, environment, metric_key), value in sorted(totals.items()):
        limit = plan_limits.get(limit_key(product_key, environment, metric_key))
        metrics.append(
            UsageMetric(
                product_key=product_key,
                environment=environment,
                metric_key=metric_key,
                value=value,
                limit=limit,
                percentage_used=percentage_used(value, limit),
            )
        )
    return UsageSummary(
        tenant_id=tenant_id,
        period_start=period_start,
        period_end=period_end,
        metrics=metrics,
        plan_limits=plan_limits,
    )


def group_usage(
    counters: list[dict[str, Any]],
    group_by: UsageGroupBy,
    tenant_labels: dict[str, str] | None = None,
) -> list[dict[str, Any]]:
    """Aggregate counters of many tenants into groups, largest total first."""
    tenant_labels = tenant_labels or {}
    groups: dict[str, dict[str, Any]] = {}
    for c in counters:
        if group_by is UsageGroupBy.TENANT_ID:
            key = tenant_labels.get(c["tenant_id"], c["tenant_id"])
        else:
            key = c[group_by.value]
        group = groups.setdefault(key, {"total": 0, "tenants": set(), "metrics": {}})
        value = int(c.get("value", 0))
        group["total"] += value
        group["tenants"].add(c["tenant_id"])
        group["metrics"][c["metric_key"]] = group["metrics"].get(c["metric_key"], 0) + value

    results = [
        {
            group_by.value: key,
            "total_usage": g["total"],
            "unique_tenants": len(g["tenants"]),
            "metrics": g["metrics"],
        }
        for key, g in groups.items()
    ]
    results.sort(key=lambda r: (-r["total_usage"], r[group_by.value]))
    return results


class UsageService:
    def __init__(
        self,
        usage_repo: UsageRepository,
        tenant_repo: TenantRepository,
        plan_repo: PlanRepository,
        resolver: TenantAccessResolver,
        partner_repo: PartnerRepository,
    ):
        self._usage = usage_repo
        self._tenants = tenant_repo
        self._plans = plan_repo
        self._resolver = resolver
        self._partners = partner_repo

    async def record(self, principal: Principal, req: UsageRecordRequest) -> dict[str, Any]:
        if not _PRODUCT_KEY_RE.match(req.product_key):
            raise AppError("invalid product key format", code=ErrorCode.INVALID_FORMAT)
        await self._resolver.require_tenant_access(principal, req.tenant_id)
        await self._tenants.get(req.tenant_id)

        counter = await self._usage.increment(
            tenant_id=req.tenant_id,
            product_key=req.product_key,
            environment=req.environment.value,
            metric_key=req.metric_key,
            period_start=ensure_utc(req.period_start),
            value=req.value,
        )
        return {
            "id": counter["id"],
            "tenant_id": counter["tenant_id"],
            "product_key": counter["product_key"],
            "environment": counter["environment"],
            "metric_key": counter["metric_key"],
            "period_start": dt_to_iso(counter["period_start"]),
            "value": counter["value"],
        }

    async def summary(
        self,
        principal: Principal,
        tenant_id: str,
        *,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
        product_key: str | None = None,
        environment: str | None = None,
    ) -> dict[str, Any]:
        await self._resolver.require_tenant_access(principal, tenant_id)
        await self._tenants.get(tenant_id)

        default_start, default_end = month_bounds(utc_now())
        start = ensure_utc(period_start) if period_start else default_start
        end = ensure_utc(period_end) if period_end else default_end
        if end < start:
            raise AppError("period_end must not be before period_start")

        counters = await self._usage.list_counters(
            tenant_id=tenant_id,
            period_start=start,
            period_end=end,
            product_key=product_key,
            environment=environment,
        )
        current = await self._plans.current_for_tenant(tenant_id, min(end, utc_now()))
        plan_limits = dict(current[1].limits) if current else {}

        result = summarize(tenant_id, start, end, counters, plan_limits)
        log.info(
            "svc.usage.summary tenant_id=%s counters=%s metrics=%s",
            tenant_id,
            len(counters),
            len(result.metrics),
        )
        out = result.model_dump(mode="json")
        out["period_start"] = dt_to_iso(start)
        out["period_end"] = dt_to_iso(end)
        return out

    async def global_usage(
        self,
        principal: Principal,
        *,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
        product_key: str | None = None,
        environment: str | None = None,
        group_by: UsageGroupBy = UsageGroupBy.PRODUCT_KEY,
    ) -> dict[str, Any]:
        if not principal.is_platform_admin:
            raise ForbiddenError("platform administrator access required")

        default_start, default_end = month_bounds(utc_now())
        start = ensure_utc(period_start) if period_start else default_start
        end = ensure_utc(period_end) if period_end else default_end
        if end < start:
            raise AppError("period_end must not be before period_start")

        counters = await self._usage.list_all_counters(
            period_start=start,
            period_end=end,
            product_key=product_key,
            environment=environment,
        )
        tenant_ids = sorted({c["tenant_id"] for c in counters})

        labels: dict[str, str] = {}
        if group_by is UsageGroupBy.TENANT_ID and tenant_ids:
            tenants = await self._tenants.find_many(tenant_ids)
            partner_names = await self._partners.names_of(
                sorted({t.partner_id for t in tenants.values()})
            )
            labels = {
                t.id: f"{t.name} ({partner_names.get(t.partner_id, t.partner_id)})"
                for t in tenants.values()
            }

        results = group_usage(counters, group_by, labels)
        log.info(
            "svc.usage.global user_id=%s group_by=%s counters=%s groups=%s",
            principal.id,
            group_by.value,
            len(counters),
            len(results),
        )
        return {
            "period_start": dt_to_iso(start),
            "period_end": dt_to_iso(end),
            "group_by": group_by.value,
            "results": results,
            "summary": {
                "total_usage": sum(r["total_usage"] for r in results),
                "unique_tenants": len(tenant_ids),
                "total_records": len(counters),
            },
        }
