from __future__ import annotations

from types import MappingProxyType

import pytest
from hypothesis import given, strategies as st

from control_plane.auth.permissions import AccessPolicy, AccessRule, Permission
from control_plane.domain.entities.identity import Role

policy = AccessPolicy.default()

EXPECTED = {
    Role.PLATFORM_ADMIN: {p.value for p in Permission},
    Role.PARTNER_ADMIN: {
        "partners:read",
        "tenants:read",
        "tenants:write",
        "domains:read",
        "domains:write",
        "domains:verify",
        "usage:read",
    },
    Role.TENANT_ADMIN: {"tenants:read", "domains:read", "domains:write", "usage:read"},
    Role.TENANT_USER: {"tenants:read", "usage:read"},
}


def test_catalog_has_fourteen_permissions() -> None:
    assert len(Permission) == 14


@pytest.mark.parametrize("role", list(Role))
def test_role_permissions_match_table(role) -> None:
    assert {p.value for p in policy.permissions_for(role)} == EXPECTED[role]


@given(role=st.sampled_from(list(Role)), permission=st.sampled_from(list(Permission)))
def test_has_permission_is_table_membership(role, permission) -> None:
    expected = permission.value in EXPECTED[role]
    assert policy.has_permission(role, permission) is expected


@given(permission=st.sampled_from(list(Permission)))
def test_platform_admin_holds_everything(permission) -> None:
    assert policy.has_permission(Role.PLATFORM_ADMIN, permission)


def test_table_is_read_only() -> None:
    assert isinstance(policy._rules, MappingProxyType)
    with pytest.raises(TypeError):
        policy._rules[Role.TENANT_USER] = AccessRule(Role.TENANT_USER, frozenset(Permission))


def test_duplicate_rule_is_rejected() -> None:
    rule = AccessRule(Role.TENANT_USER, frozenset())
    with pytest.raises(ValueError):
        AccessPolicy([rule, rule])


def test_role_without_rule_holds_nothing() -> None:
    partial = AccessPolicy([AccessRule(Role.TENANT_USER, frozenset({Permission.USAGE_READ}))])
    assert not partial.has_permission(Role.PLATFORM_ADMIN, Permission.USAGE_READ)
