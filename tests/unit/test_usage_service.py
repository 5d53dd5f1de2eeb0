from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from control_plane.auth.resolver import TenantAccessResolver
from control_plane.domain.entities.identity import Role
from control_plane.domain.entities.usage import Environment, UsageGroupBy, UsageRecordRequest
from control_plane.errors import AppError, ErrorCode, ForbiddenError
from control_plane.services.usage_service import UsageService, group_usage

from fakes import (
    FakePartnerRepo,
    FakeTenantRepo,
    FakeUsageRepo,
    InMemoryDirectory,
    make_partner,
    make_tenant,
    membership,
    principal,
)

ROOT = principal("root", Role.PLATFORM_ADMIN)
TU = principal("tu", Role.TENANT_USER, membership("t1", Role.TENANT_USER))
JAN = datetime(2025, 1, 1, tzinfo=timezone.utc)
FEB = datetime(2025, 2, 1, tzinfo=timezone.utc)


def _counter(tenant_id, product_key, environment, metric_key, value, period_start=JAN):
    return {
        "tenant_id": tenant_id,
        "product_key": product_key,
        "environment": environment,
        "metric_key": metric_key,
        "value": value,
        "period_start": period_start,
    }


COUNTERS = [
    _counter("t1", "doc-ai", "PRODUCTION", "pages", 40),
    _counter("t1", "doc-ai", "STAGING", "pages", 5),
    _counter("t2", "doc-ai", "PRODUCTION", "pages", 10),
    _counter("t2", "chat", "PRODUCTION", "messages", 70),
    _counter("t2", "chat", "PRODUCTION", "messages", 999, period_start=FEB),
]


@pytest.fixture
def usage_repo() -> FakeUsageRepo:
    return FakeUsageRepo(COUNTERS)


@pytest.fixture
def service(usage_repo) -> UsageService:
    directory = InMemoryDirectory(memberships=[("tu", "t1", Role.TENANT_USER)])
    return UsageService(
        usage_repo,
        FakeTenantRepo(make_tenant("t1", "p1"), make_tenant("t2", "p2")),
        None,
        TenantAccessResolver(directory),
        FakePartnerRepo(make_partner("p1"), make_partner("p2")),
    )


def _record(product_key: str, tenant_id: str = "t1") -> UsageRecordRequest:
    return UsageRecordRequest(
        tenant_id=tenant_id,
        product_key=product_key,
        environment=Environment.PRODUCTION,
        metric_key="pages",
        value=3,
        period_start=JAN,
    )


@pytest.mark.asyncio
async def test_record_increments_counter(service, usage_repo) -> None:
    out = await service.record(TU, _record("doc-ai"))

    assert out["value"] == 3
    assert out["period_start"] == "2025-01-01T00:00:00.000Z"
    assert usage_repo.increments[0]["product_key"] == "doc-ai"
    assert usage_repo.increments[0]["environment"] == "PRODUCTION"


@pytest.mark.asyncio
@pytest.mark.parametrize("product_key", ["Doc-AI", "doc_ai", "9lives", "doc-", "d", ""])
async def test_record_rejects_malformed_product_key(service, usage_repo, product_key) -> None:
    with pytest.raises(AppError) as exc:
        await service.record(TU, _record(product_key))
    assert exc.value.code == ErrorCode.INVALID_FORMAT
    assert usage_repo.increments == []


@pytest.mark.asyncio
async def test_record_for_foreign_tenant_is_forbidden(service, usage_repo) -> None:
    with pytest.raises(ForbiddenError):
        await service.record(TU, _record("doc-ai", tenant_id="t2"))
    assert usage_repo.increments == []


def test_negative_usage_value_is_invalid() -> None:
    with pytest.raises(ValidationError):
        UsageRecordRequest(
            tenant_id="t1",
            product_key="doc-ai",
            environment=Environment.PRODUCTION,
            metric_key="pages",
            value=-1,
            period_start=JAN,
        )


# ----------------------------
# global usage
# ----------------------------


@pytest.mark.asyncio
async def test_global_usage_requires_platform_admin(service) -> None:
    with pytest.raises(ForbiddenError):
        await service.global_usage(TU, period_start=JAN, period_end=JAN)


@pytest.mark.asyncio
async def test_global_usage_by_product(service) -> None:
    out = await service.global_usage(
        ROOT, period_start=JAN, period_end=datetime(2025, 1, 31, tzinfo=timezone.utc)
    )

    assert out["group_by"] == "product_key"
    assert out["results"] == [
        {
            "product_key": "chat",
            "total_usage": 70,
            "unique_tenants": 1,
            "metrics": {"messages": 70},
        },
        {
            "product_key": "doc-ai",
            "total_usage": 55,
            "unique_tenants": 2,
            "metrics": {"pages": 55},
        },
    ]
    assert out["summary"] == {"total_usage": 125, "unique_tenants": 2, "total_records": 4}


@pytest.mark.asyncio
async def test_global_usage_by_tenant_uses_tenant_and_partner_names(service) -> None:
    out = await service.global_usage(
        ROOT,
        period_start=JAN,
        period_end=JAN,
        environment="PRODUCTION",
        group_by=UsageGroupBy.TENANT_ID,
    )

    keys = [r["tenant_id"] for r in out["results"]]
    assert keys == ["Tenant t2 (Partner p2)", "Tenant t1 (Partner p1)"]


@pytest.mark.asyncio
async def test_global_usage_rejects_inverted_period(service) -> None:
    with pytest.raises(AppError):
        await service.global_usage(ROOT, period_start=FEB, period_end=JAN)


def test_group_usage_by_environment() -> None:
    results = group_usage(COUNTERS[:3], UsageGroupBy.ENVIRONMENT)
    assert [(r["environment"], r["total_usage"]) for r in results] == [
        ("PRODUCTION", 50),
        ("STAGING", 5),
    ]
