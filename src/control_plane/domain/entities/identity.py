from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, EmailStr, Field


class Role(str, Enum):
    PLATFORM_ADMIN = "PLATFORM_ADMIN"  # global, independent of tenant scope
    PARTNER_ADMIN = "PARTNER_ADMIN"  # every tenant of the owning partner
    TENANT_ADMIN = "TENANT_ADMIN"  # one tenant, may manage its domains
    TENANT_USER = "TENANT_USER"  # one tenant, read-only


TENANT_SCOPED_ROLES = frozenset({Role.TENANT_ADMIN, Role.TENANT_USER})


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DISABLED = "DISABLED"


class User(BaseModel):
    """
    Mongo document model for the `users` collection.
    """

    id: str
    email: str
    name: str
    password_hash: str | None = None
    status: UserStatus = UserStatus.ACTIVE
    created_at: datetime
    updated_at: datetime


class Membership(BaseModel):
    """Binds one user to exactly one tenant with exactly one role."""

    id: str | None = None
    user_id: str
    tenant_id: str
    role: Role
    created_at: datetime | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class CreateUserRequest(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1)
    password: str = Field(min_length=8)


class AddMembershipRequest(BaseModel):
    tenant_id: str = Field(min_length=1)
    role: Role = Role.TENANT_USER
