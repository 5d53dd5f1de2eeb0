from __future__ import annotations

import pytest

from control_plane.auth.resolver import TenantAccessResolver
from control_plane.domain.entities.identity import Role
from control_plane.domain.entities.tenancy import (
    DomainStatus,
    PartnerStatus,
    TenantCreateRequest,
    TenantStatus,
    TenantType,
)
from control_plane.errors import AppError, ErrorCode, ForbiddenError, LimitExceededError
from control_plane.services.scope import TenantScope
from control_plane.services.tenant_service import TenantService

from fakes import (
    FakeDomainRepo,
    FakeHostnameCache,
    FakeIdentityRepo,
    FakePartnerRepo,
    FakeTenantRepo,
    InMemoryDirectory,
    make_domain,
    make_partner,
    make_settings,
    make_tenant,
    membership,
    principal,
)

ROOT = principal("root", Role.PLATFORM_ADMIN)
PARTNER_ADMIN = principal("pa", Role.PARTNER_ADMIN, membership("t1", Role.PARTNER_ADMIN))


@pytest.fixture
def world():
    partners = FakePartnerRepo(
        make_partner("p1"),
        make_partner("p2"),
        make_partner("p-pending", PartnerStatus.PENDING),
        make_partner("p-suspended", PartnerStatus.SUSPENDED),
    )
    tenants = FakeTenantRepo(make_tenant("t1", "p1"), make_tenant("t2", "p2"))
    domains = FakeDomainRepo(
        make_domain("d1", "t1", "a.acme.io", DomainStatus.VERIFIED),
        make_domain("d2", "t1", "b.acme.io", DomainStatus.VERIFIED),
    )
    identity = FakeIdentityRepo(memberships=[("pa", "t1", Role.PARTNER_ADMIN)])
    directory = InMemoryDirectory(
        memberships=[("pa", "t1", Role.PARTNER_ADMIN)],
        tenant_partner={"t1": "p1", "t2": "p2"},
    )
    cache = FakeHostnameCache()

    def build(**overrides) -> TenantService:
        return TenantService(
            tenant_repo=tenants,
            partner_repo=partners,
            identity_repo=identity,
            domain_repo=domains,
            plan_repo=None,
            resolver=TenantAccessResolver(directory),
            scope=TenantScope(tenants),
            hostname_cache=cache,
            settings=make_settings(**overrides),
        )

    return build, tenants, cache


def _req(tenant_id: str, partner_id: str) -> TenantCreateRequest:
    return TenantCreateRequest(
        id=tenant_id, partner_id=partner_id, name=f"Tenant {tenant_id}", tenant_type=TenantType.API
    )


@pytest.mark.asyncio
async def test_platform_admin_creates_tenant(world) -> None:
    build, tenants, _ = world
    out = await build().create_tenant(ROOT, _req("t9", "p2"))

    assert out["id"] == "t9"
    assert out["partner_id"] == "p2"
    assert out["status"] == "ACTIVE"
    assert "t9" in tenants.tenants


@pytest.mark.asyncio
@pytest.mark.parametrize("partner_id", ["p-pending", "p-suspended", "p-missing"])
async def test_partner_must_exist_and_be_active(world, partner_id) -> None:
    build, tenants, _ = world
    with pytest.raises(AppError) as exc:
        await build().create_tenant(ROOT, _req("t9", partner_id))

    assert exc.value.code == ErrorCode.RESOURCE_NOT_FOUND
    assert exc.value.http_status == 400
    assert "t9" not in tenants.tenants


@pytest.mark.asyncio
async def test_tenant_limit_triggers_at_exact_maximum(world) -> None:
    build, tenants, _ = world
    svc = build(max_tenants_per_partner=3)

    # p1 already owns t1
    await svc.create_tenant(ROOT, _req("t10", "p1"))
    await svc.create_tenant(ROOT, _req("t11", "p1"))
    with pytest.raises(LimitExceededError) as exc:
        await svc.create_tenant(ROOT, _req("t12", "p1"))

    assert exc.value.code == ErrorCode.TENANT_LIMIT_EXCEEDED
    assert await tenants.count_by_partner("p1") == 3


@pytest.mark.asyncio
async def test_partner_admin_creates_under_own_partner(world) -> None:
    build, _, _ = world
    out = await build().create_tenant(PARTNER_ADMIN, _req("t9", "p1"))
    assert out["partner_id"] == "p1"


@pytest.mark.asyncio
async def test_partner_admin_of_other_partner_is_forbidden(world) -> None:
    build, tenants, _ = world
    with pytest.raises(ForbiddenError):
        await build().create_tenant(PARTNER_ADMIN, _req("t9", "p2"))
    assert "t9" not in tenants.tenants


@pytest.mark.asyncio
async def test_status_change_evicts_cached_hostnames(world) -> None:
    build, tenants, cache = world
    cache.data["a.acme.io"] = {"hostname": "a.acme.io"}

    out = await build().update_status(PARTNER_ADMIN, "t1", TenantStatus.SUSPENDED)

    assert out["status"] == "SUSPENDED"
    assert sorted(cache.invalidated) == ["a.acme.io", "b.acme.io"]
    assert cache.data == {}


@pytest.mark.asyncio
async def test_tenant_admin_cannot_change_status(world) -> None:
    build, _, _ = world
    ta = principal("ta", Role.TENANT_ADMIN, membership("t1", Role.TENANT_ADMIN))
    with pytest.raises(ForbiddenError):
        await build().update_status(ta, "t1", TenantStatus.SUSPENDED)
