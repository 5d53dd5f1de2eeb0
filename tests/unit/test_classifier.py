from __future__ import annotations

import pytest

from control_plane.auth.classifier import (
    is_public_path,
    required_permission,
    target_tenant_id,
    unclassified_paths,
)
from control_plane.auth.permissions import Permission


@pytest.mark.parametrize(
    "method,path,expected",
    [
        ("GET", "/partners", Permission.PARTNERS_READ),
        ("POST", "/partners", Permission.PARTNERS_WRITE),
        ("DELETE", "/partners/p1", Permission.PARTNERS_DELETE),
        ("GET", "/tenants/t1/config", Permission.TENANTS_READ),
        ("PATCH", "/tenants/t1/status", Permission.TENANTS_WRITE),
        ("DELETE", "/tenants/t1", Permission.TENANTS_DELETE),
        ("GET", "/plans", Permission.PLANS_READ),
        ("PUT", "/plans/x", Permission.PLANS_WRITE),
        ("GET", "/domains", Permission.DOMAINS_READ),
        ("POST", "/domains", Permission.DOMAINS_WRITE),
        ("POST", "/domains/d1/verify", Permission.DOMAINS_VERIFY),
        ("GET", "/usage/tenant/t1", Permission.USAGE_READ),
        ("GET", "/admin/dashboard", Permission.USAGE_READ),
        ("GET", "/admin/settings", Permission.SYSTEM_READ),
        ("POST", "/system/jobs", Permission.SYSTEM_WRITE),
    ],
)
def test_required_permission(method, path, expected) -> None:
    assert required_permission(method, path) is expected


def test_recording_usage_only_needs_read() -> None:
    # a POST under /usage is still classified as usage:read
    assert required_permission("POST", "/usage/record") is Permission.USAGE_READ


def test_admin_dashboard_checked_before_admin() -> None:
    assert required_permission("POST", "/admin/dashboard") is Permission.USAGE_READ
    assert required_permission("POST", "/admin/other") is Permission.SYSTEM_WRITE


def test_verify_must_be_a_whole_segment() -> None:
    assert required_permission("POST", "/domains/verifying.example.com") is Permission.DOMAINS_WRITE


def test_method_is_case_insensitive() -> None:
    assert required_permission("post", "/tenants") is Permission.TENANTS_WRITE


def test_unknown_path_requires_nothing() -> None:
    assert required_permission("POST", "/metrics") is None


@pytest.mark.parametrize(
    "path", ["/", "/health", "/health/ready", "/docs", "/openapi.json", "/auth/login", "/domains/resolve"]
)
def test_public_paths(path) -> None:
    assert is_public_path(path)


@pytest.mark.parametrize("path", ["/auth/me", "/tenants", "/domains", "/domains/d1"])
def test_protected_paths(path) -> None:
    assert not is_public_path(path)


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/tenants/t1", "t1"),
        ("/tenants/t1/config", "t1"),
        ("/usage/tenant/t9", "t9"),
        ("/plans/tenant/t3", "t3"),
        ("/tenants", None),
        ("/domains/d1", None),
        ("/plans/p1", None),
    ],
)
def test_target_tenant_id(path, expected) -> None:
    assert target_tenant_id(path) == expected


def test_unclassified_paths_skip_public_and_auth() -> None:
    paths = ["/", "/health", "/auth/me", "/tenants", "/metrics", "/internal/debug"]
    assert unclassified_paths(paths) == ["/metrics", "/internal/debug"]
