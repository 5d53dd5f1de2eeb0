from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from control_plane.domain.entities.identity import Role


@dataclass(frozen=True)
class TenantMembership:
    """One entry of a principal's tenant context, as carried in the token."""

    tenant_id: str
    tenant_name: str
    tenant_type: str
    role: Role

    def to_claim(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "tenant_name": self.tenant_name,
            "tenant_type": self.tenant_type,
            "role": self.role.value,
        }

    @classmethod
    def from_claim(cls, claim: dict[str, Any]) -> TenantMembership:
        return cls(
            tenant_id=str(claim["tenant_id"]),
            tenant_name=str(claim["tenant_name"]),
            tenant_type=str(claim["tenant_type"]),
            role=Role(claim["role"]),
        )


@dataclass(frozen=True)
class Principal:
    id: str
    email: str
    primary_role: Role
    tenant_memberships: tuple[TenantMembership, ...] = field(default_factory=tuple)

    @property
    def tenant_ids(self) -> tuple[str, ...]:
        return tuple(m.tenant_id for m in self.tenant_memberships)

    @property
    def is_platform_admin(self) -> bool:
        return self.primary_role is Role.PLATFORM_ADMIN
