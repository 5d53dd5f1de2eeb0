from __future__ import annotations

import asyncio
from datetime import timedelta

from control_plane.auth.engine import AuthorizationEngine
from control_plane.auth.permissions import AccessPolicy, Permission
from control_plane.auth.resolver import TenantAccessResolver
from control_plane.domain.entities.identity import Role
from control_plane.errors import ErrorCode

from fakes import T0, BrokenDirectory


def _authorize(engine, method, path, header=None):
    return asyncio.run(engine.authorize(method, path, header))


def test_health_without_token_is_allowed(engine) -> None:
    result = _authorize(engine, "GET", "/health")
    assert result.allow
    assert result.principal is None


def test_missing_token_is_unauthorized(engine) -> None:
    result = _authorize(engine, "GET", "/tenants")
    assert not result.allow
    assert result.code == ErrorCode.UNAUTHORIZED
    assert result.http_status == 401


def test_permission_check_short_circuits_tenant_scope(engine, bearer, directory) -> None:
    result = _authorize(engine, "PUT", "/tenants/t1", bearer("tu"))

    assert not result.allow
    assert result.code == ErrorCode.FORBIDDEN
    assert result.message == "insufficient permissions"
    assert directory.calls == 0


def test_expired_and_tampered_tokens_are_distinct(engine, bearer, clock) -> None:
    header = bearer("tu")
    token = header.split(" ", 1)[1]
    head, payload, sig = token.split(".")
    tampered = "Bearer " + ".".join([head, payload, sig[::-1]])

    invalid = _authorize(engine, "GET", "/tenants", tampered)
    clock.now = T0 + timedelta(hours=1)
    expired = _authorize(engine, "GET", "/tenants", header)

    assert expired.code == ErrorCode.TOKEN_EXPIRED
    assert invalid.code == ErrorCode.TOKEN_INVALID
    assert expired.message != invalid.message


def test_tenant_user_reads_own_tenant(engine, bearer) -> None:
    result = _authorize(engine, "GET", "/tenants/t1/config", bearer("tu"))
    assert result.allow
    assert result.permission is Permission.TENANTS_READ
    assert result.tenant_id == "t1"


def test_tenant_user_denied_foreign_tenant(engine, bearer) -> None:
    result = _authorize(engine, "GET", "/tenants/t2/config", bearer("tu"))
    assert not result.allow
    assert result.code == ErrorCode.FORBIDDEN
    assert result.message == "access denied to this tenant"


def test_partner_admin_reaches_sibling_through_path(engine, bearer) -> None:
    assert _authorize(engine, "PATCH", "/tenants/t2/status", bearer("pa")).allow
    assert not _authorize(engine, "PATCH", "/tenants/t3/status", bearer("pa")).allow


def test_platform_admin_skips_tenant_scope(engine, bearer, directory) -> None:
    result = _authorize(engine, "GET", "/usage/tenant/t3", bearer("root"))
    assert result.allow
    assert result.principal.primary_role is Role.PLATFORM_ADMIN
    assert directory.calls == 0


def test_unclassified_path_only_needs_identity(engine, bearer) -> None:
    assert _authorize(engine, "GET", "/auth/me", bearer("tu")).allow
    assert not _authorize(engine, "GET", "/auth/me").allow


def test_usage_record_is_allowed_for_tenant_user(engine, bearer) -> None:
    assert _authorize(engine, "POST", "/usage/record", bearer("tu")).allow


def test_authorize_is_idempotent(engine, bearer) -> None:
    header = bearer("ta")
    for method, path in [
        ("GET", "/tenants/t1/config"),
        ("POST", "/domains"),
        ("GET", "/tenants/t2/config"),
        ("POST", "/partners"),
    ]:
        first = _authorize(engine, method, path, header)
        second = _authorize(engine, method, path, header)
        assert first == second


def test_store_failure_is_internal_error_not_forbidden(tokens, bearer) -> None:
    engine = AuthorizationEngine(
        AccessPolicy.default(), tokens, TenantAccessResolver(BrokenDirectory())
    )
    result = _authorize(engine, "GET", "/tenants/t1/config", bearer("tu"))

    assert not result.allow
    assert result.code == ErrorCode.INTERNAL_ERROR
    assert result.http_status == 500
    assert "store" not in result.message
