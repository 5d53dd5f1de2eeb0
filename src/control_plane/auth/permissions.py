from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping

from control_plane.domain.entities.identity import Role


# --- 1. The closed permission catalog ---
class Permission(str, Enum):
    PARTNERS_READ = "partners:read"
    PARTNERS_WRITE = "partners:write"
    PARTNERS_DELETE = "partners:delete"
    TENANTS_READ = "tenants:read"
    TENANTS_WRITE = "tenants:write"
    TENANTS_DELETE = "tenants:delete"
    PLANS_READ = "plans:read"
    PLANS_WRITE = "plans:write"
    DOMAINS_READ = "domains:read"
    DOMAINS_WRITE = "domains:write"
    DOMAINS_VERIFY = "domains:verify"
    USAGE_READ = "usage:read"
    SYSTEM_READ = "system:read"
    SYSTEM_WRITE = "system:write"


@dataclass(frozen=True)
class AccessCondition:
    """
    Declarative scope of a rule. Informational only: the tenant access
    resolver enforces the scope procedurally.
    """

    field: str
    operator: str
    value: str


@dataclass(frozen=True)
class AccessRule:
    role: Role
    permissions: frozenset[Permission]
    conditions: tuple[AccessCondition, ...] = ()


# --- 2. Role -> allowed permissions ---
_DEFAULT_RULES: tuple[AccessRule, ...] = (
    # Platform admin: everything
    AccessRule(
        role=Role.PLATFORM_ADMIN,
        permissions=frozenset(Permission),
    ),
    # Partner admin: own partner and its tenants
    AccessRule(
        role=Role.PARTNER_ADMIN,
        permissions=frozenset(
            {
                Permission.PARTNERS_READ,
                Permission.TENANTS_READ,
                Permission.TENANTS_WRITE,
                Permission.DOMAINS_READ,
                Permission.DOMAINS_WRITE,
                Permission.DOMAINS_VERIFY,
                Permission.USAGE_READ,
            }
        ),
        conditions=(AccessCondition("partner_id", "equals", "user.partner_id"),),
    ),
    # Tenant admin: own tenant only
    AccessRule(
        role=Role.TENANT_ADMIN,
        permissions=frozenset(
            {
                Permission.TENANTS_READ,
                Permission.DOMAINS_READ,
                Permission.DOMAINS_WRITE,
                Permission.USAGE_READ,
            }
        ),
        conditions=(AccessCondition("tenant_id", "equals", "user.tenant_id"),),
    ),
    # Tenant user: read-only on own tenant
    AccessRule(
        role=Role.TENANT_USER,
        permissions=frozenset({Permission.TENANTS_READ, Permission.USAGE_READ}),
        conditions=(AccessCondition("tenant_id", "equals", "user.tenant_id"),),
    ),
)


class AccessPolicy:
    """
    Immutable role -> rule table. Build it once at startup and hand it to the
    decision engine; there is no write path after construction.
    """

    __slots__ = ("_rules",)

    def __init__(self, rules: Iterable[AccessRule]):
        table: dict[Role, AccessRule] = {}
        for rule in rules:
            if rule.role in table:
                raise ValueError(f"duplicate access rule for role {rule.role.value}")
            table[rule.role] = rule
        self._rules: Mapping[Role, AccessRule] = MappingProxyType(table)

    @classmethod
    def default(cls) -> AccessPolicy:
        return cls(_DEFAULT_RULES)

    def rule_for(self, role: Role) -> AccessRule | None:
        return self._rules.get(role)

    def permissions_for(self, role: Role) -> frozenset[Permission]:
        rule = self._rules.get(role)
        return rule.permissions if rule else frozenset()

    def has_permission(self, role: Role, permission: Permission) -> bool:
        """Unknown roles hold no permissions."""
        return permission in self.permissions_for(role)
