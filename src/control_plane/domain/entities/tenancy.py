from __future__ import annotations

import ipaddress
import re
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

HOSTNAME_RE = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

# RFC 2606 / RFC 6761 names plus common internal-only suffixes.
RESERVED_SUFFIXES = (
    "localhost",
    "local",
    "localdomain",
    "internal",
    "intranet",
    "lan",
    "home",
    "corp",
    "test",
    "invalid",
    "example",
    "onion",
    "home.arpa",
    "in-addr.arpa",
    "ip6.arpa",
)


def hostname_problem(hostname: str) -> str | None:
    """Why `hostname` cannot be registered as a custom domain, or None."""
    try:
        ipaddress.ip_address(hostname)
        return "IP addresses are not allowed"
    except ValueError:
        pass
    if not HOSTNAME_RE.match(hostname):
        return "invalid hostname format"
    labels = hostname.split(".")
    if len(labels) < 2:
        return "hostname must be fully qualified"
    if labels[-1].isdigit():
        return "invalid hostname format"
    for suffix in RESERVED_SUFFIXES:
        if hostname == suffix or hostname.endswith("." + suffix):
            return "reserved hostnames are not allowed"
    return None


class PartnerStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class TenantType(str, Enum):
    UI = "UI"
    API = "API"
    HYBRID = "HYBRID"


class TenantStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    ARCHIVED = "ARCHIVED"


class DomainStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"
    DISABLED = "DISABLED"


class Partner(BaseModel):
    id: str
    name: str
    billing_email: str
    status: PartnerStatus = PartnerStatus.PENDING
    created_at: datetime
    updated_at: datetime


class Tenant(BaseModel):
    """
    Mongo document model for the `tenants` collection.

    `id` is assigned by the caller, not generated by the store.
    """

    id: str
    partner_id: str
    name: str
    tenant_type: TenantType
    status: TenantStatus = TenantStatus.ACTIVE
    created_at: datetime
    updated_at: datetime


class Domain(BaseModel):
    id: str
    tenant_id: str
    hostname: str
    status: DomainStatus = DomainStatus.PENDING
    verified_at: datetime | None = None
    last_verified_at: datetime | None = None
    verification_errors: list[str] = Field(default_factory=list)
    redirect_rules: dict[str, Any] | None = None
    ssl_config: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class Plan(BaseModel):
    id: str
    key: str
    name: str
    description: str | None = None
    limits: dict[str, int] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class TenantPlan(BaseModel):
    id: str
    tenant_id: str
    plan_id: str
    effective_from: datetime
    effective_to: datetime | None = None
    created_at: datetime


# ----------------------------
# Request bodies
# ----------------------------


class PartnerCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    billing_email: EmailStr


class PartnerUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    billing_email: EmailStr | None = None


class PartnerStatusRequest(BaseModel):
    status: PartnerStatus


class TenantCreateRequest(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    partner_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=255)
    tenant_type: TenantType


class TenantStatusRequest(BaseModel):
    status: TenantStatus


class DomainCreateRequest(BaseModel):
    tenant_id: str = Field(min_length=1)
    hostname: str = Field(min_length=1, max_length=255)

    @field_validator("hostname", mode="before")
    @classmethod
    def lowercase_hostname(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class DomainUpdateRequest(BaseModel):
    status: DomainStatus | None = None
    redirect_rules: dict[str, Any] | None = None
    ssl_config: dict[str, Any] | None = None


class PlanCreateRequest(BaseModel):
    key: str = Field(min_length=1, max_length=64, pattern=r"^[a-z][a-z0-9_-]*$")
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    limits: dict[str, int] = Field(default_factory=dict)


class PlanUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    limits: dict[str, int] | None = None


class PlanAttachRequest(BaseModel):
    tenant_id: str = Field(min_length=1)
    plan_id: str = Field(min_length=1)
    effective_from: datetime | None = None
