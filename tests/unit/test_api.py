from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from control_plane.auth.engine import AuthorizationEngine
from control_plane.auth.jwt import TokenService
from control_plane.auth.permissions import AccessPolicy
from control_plane.auth.resolver import TenantAccessResolver
from control_plane.domain.entities.identity import Role
from control_plane.errors import ConflictError
from control_plane.main import create_app
from control_plane.services.auth_service import AuthService

from fakes import FixedClock, InMemoryDirectory, make_settings, membership


class StubTenantService:
    async def get_config(self, principal, tenant_id):
        return {"id": tenant_id, "requested_by": principal.id}

    async def update_status(self, principal, tenant_id, status):
        return {"id": tenant_id, "status": status.value}


class StubDomainService:
    async def resolve_hostname(self, hostname):
        return {"hostname": hostname, "tenant": {"id": "t1"}}

    async def create_domain(self, principal, req):
        raise ConflictError("hostname already registered")


class StubUsageService:
    def __init__(self):
        self.recorded = []

    async def record(self, principal, req):
        self.recorded.append((principal.id, req.tenant_id))
        return {"tenant_id": req.tenant_id, "value": req.value}


class StubSystemService:
    maintenance = {"enabled": False, "message": None, "changed_at": None}

    def info(self):
        return {"service": "control-plane-api", "limits": {"max_domains_per_tenant": 50}}


class StubAdminService:
    async def dashboard_stats(self):
        return {"total_partners": 2, "total_tenants": 3}


class StubGlobalUsageService(StubUsageService):
    async def global_usage(self, principal, **kwargs):
        return {"group_by": kwargs["group_by"].value, "requested_by": principal.id}


@pytest.fixture
def api():
    settings = make_settings()
    tokens = TokenService(settings, clock=FixedClock())
    directory = InMemoryDirectory(
        memberships=[("tu", "t1", Role.TENANT_USER), ("ta", "t1", Role.TENANT_ADMIN)],
        tenant_partner={"t1": "p1", "t2": "p1"},
    )
    app = create_app(settings)
    app.state.authz_engine = AuthorizationEngine(
        AccessPolicy.default(), tokens, TenantAccessResolver(directory)
    )
    app.state.tenant_service = StubTenantService()
    app.state.domain_service = StubDomainService()
    app.state.usage_service = StubGlobalUsageService()
    app.state.system_service = StubSystemService()
    app.state.admin_service = StubAdminService()

    def header(user_id: str, role: Role) -> dict:
        if role is Role.PLATFORM_ADMIN:
            # the bootstrap admin email carries the role, not a membership
            token = tokens.issue_token(user_id, "root@example.com", [])
            return {"Authorization": f"Bearer {token}"}
        token = tokens.issue_token(user_id, f"{user_id}@example.com", [membership("t1", role)])
        return {"Authorization": f"Bearer {token}"}

    # no context manager: startup (Mongo, Redis) is not run
    return TestClient(app), app, header


def test_health_is_public_and_echoes_correlation_id(api) -> None:
    client, _, _ = api
    resp = client.get("/health", headers={"x-correlation-id": "abc-123"})

    assert resp.status_code == 200
    assert resp.json()["status"] == "success"
    assert resp.headers["x-correlation-id"] == "abc-123"


def test_protected_route_without_token(api) -> None:
    client, _, _ = api
    resp = client.get("/tenants/t1/config")

    body = resp.json()
    assert resp.status_code == 401
    assert body["status"] == "failure"
    assert body["code"] == "UNAUTHORIZED"
    assert body["correlation_id"]


def test_invalid_token(api) -> None:
    client, _, _ = api
    resp = client.get("/tenants/t1/config", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.json()["code"] == "TOKEN_INVALID"


def test_tenant_user_reads_own_config(api) -> None:
    client, _, header = api
    resp = client.get("/tenants/t1/config", headers=header("tu", Role.TENANT_USER))

    assert resp.status_code == 200
    assert resp.json()["data"] == {"id": "t1", "requested_by": "tu"}


def test_tenant_user_cannot_change_status(api) -> None:
    client, _, header = api
    resp = client.patch(
        "/tenants/t1/status",
        json={"status": "SUSPENDED"},
        headers=header("tu", Role.TENANT_USER),
    )
    assert resp.status_code == 403
    assert resp.json()["message"] == "insufficient permissions"


def test_foreign_tenant_is_forbidden(api) -> None:
    client, _, header = api
    resp = client.get("/tenants/t2/config", headers=header("tu", Role.TENANT_USER))
    assert resp.status_code == 403
    assert resp.json()["message"] == "access denied to this tenant"


def test_hostname_resolution_is_public(api) -> None:
    client, _, _ = api
    resp = client.get("/domains/resolve", params={"hostname": "app.example.com"})
    assert resp.status_code == 200
    assert resp.json()["data"]["tenant"]["id"] == "t1"


def test_app_error_becomes_failure_envelope(api) -> None:
    client, _, header = api
    resp = client.post(
        "/domains",
        json={"tenant_id": "t1", "hostname": "app.example.com"},
        headers=header("ta", Role.TENANT_ADMIN),
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "RESOURCE_ALREADY_EXISTS"


def test_validation_error_envelope(api) -> None:
    client, _, header = api
    resp = client.post("/domains", json={}, headers=header("ta", Role.TENANT_ADMIN))
    assert resp.status_code == 400
    assert resp.json()["code"] == "VALIDATION_ERROR"


def test_tenant_user_records_usage(api) -> None:
    client, app, header = api
    resp = client.post(
        "/usage/record",
        json={
            "tenant_id": "t1",
            "product_key": "doc-ai",
            "environment": "PRODUCTION",
            "metric_key": "pages",
            "value": 3,
            "period_start": "2025-01-01T00:00:00Z",
        },
        headers=header("tu", Role.TENANT_USER),
    )
    assert resp.status_code == 201
    assert app.state.usage_service.recorded == [("tu", "t1")]


def test_me_returns_token_principal(api) -> None:
    client, _, header = api
    resp = client.get("/auth/me", headers=header("ta", Role.TENANT_ADMIN))

    data = resp.json()["data"]
    assert resp.status_code == 200
    assert data["id"] == "ta"
    assert data["role"] == "TENANT_ADMIN"
    assert data["tenants"][0]["tenant_id"] == "t1"


def test_creating_users_needs_platform_admin(api) -> None:
    client, app, header = api
    app.state.auth_service = AuthService(None, None, None, make_settings())
    resp = client.post(
        "/auth/users",
        json={"email": "new@example.com", "name": "New", "password": "long-enough"},
        headers=header("ta", Role.TENANT_ADMIN),
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "FORBIDDEN"


@pytest.mark.parametrize(
    "path", ["/system/info", "/admin/dashboard-stats", "/usage/global"]
)
def test_platform_routes_refuse_tenant_users(api, path) -> None:
    client, _, header = api
    resp = client.get(path, headers=header("tu", Role.TENANT_USER))
    assert resp.status_code == 403
    assert resp.json()["code"] == "FORBIDDEN"


def test_platform_admin_reads_system_info(api) -> None:
    client, _, header = api
    resp = client.get("/system/info", headers=header("root", Role.PLATFORM_ADMIN))
    assert resp.status_code == 200
    assert resp.json()["data"]["limits"]["max_domains_per_tenant"] == 50


def test_platform_admin_reads_dashboard_stats(api) -> None:
    client, _, header = api
    resp = client.get("/admin/dashboard-stats", headers=header("root", Role.PLATFORM_ADMIN))
    assert resp.status_code == 200
    assert resp.json()["data"]["total_tenants"] == 3


def test_platform_admin_reads_global_usage(api) -> None:
    client, _, header = api
    resp = client.get(
        "/usage/global",
        params={"group_by": "environment"},
        headers=header("root", Role.PLATFORM_ADMIN),
    )
    assert resp.status_code == 200
    assert resp.json()["data"] == {"group_by": "environment", "requested_by": "root"}


def test_maintenance_toggle_needs_system_write(api) -> None:
    client, _, header = api
    resp = client.post(
        "/system/maintenance", json={"enabled": True}, headers=header("ta", Role.TENANT_ADMIN)
    )
    assert resp.status_code == 403


def test_version_is_public(api) -> None:
    client, _, _ = api
    resp = client.get("/version")
    assert resp.status_code == 200
    assert resp.json()["data"]["version"] == "v0.1.0"


def test_detailed_health_reports_unreachable_stores(api) -> None:
    client, _, _ = api
    resp = client.get("/health/detailed")

    body = resp.json()
    assert resp.status_code == 503
    assert body["status"] == "unhealthy"
    assert body["services"]["database"]["status"] == "unhealthy"
    assert body["maintenance"] is False
