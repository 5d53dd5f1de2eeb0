from __future__ import annotations

from typing import Any

from control_plane.auth.jwt import TokenService, primary_role_for
from control_plane.auth.models import Principal, TenantMembership
from control_plane.auth.passwords import hash_password, verify_password
from control_plane.configs.logging_config import get_logger
from control_plane.configs.settings import Settings
from control_plane.domain.entities.identity import (
    AddMembershipRequest,
    CreateUserRequest,
    LoginRequest,
    User,
    UserStatus,
)
from control_plane.errors import AuthError, NotFoundError
from control_plane.repositories.identity_repository import IdentityRepository
from control_plane.repositories.tenant_repository import TenantRepository
from control_plane.utils.time_utils import dt_to_iso

log = get_logger(__name__)


class AuthService:
    def __init__(
        self,
        identity_repo: IdentityRepository,
        tenant_repo: TenantRepository,
        tokens: TokenService,
        settings: Settings,
    ):
        self._identity = identity_repo
        self._tenants = tenant_repo
        self._tokens = tokens
        self._settings = settings
        self._dummy: str | None = None

    async def login(self, req: LoginRequest) -> dict[str, Any]:
        user = await self._identity.find_user_by_email(str(req.email))
        # every rejected login pays for one bcrypt check
        stored_hash = user.password_hash if user is not None else None
        password_ok = verify_password(req.password, stored_hash or self._dummy_hash())
        if user is None:
            log.warning("svc.auth.login unknown_email")
            raise AuthError("invalid credentials")
        if user.status is not UserStatus.ACTIVE or not stored_hash or not password_ok:
            log.warning("svc.auth.login rejected user_id=%s", user.id)
            raise AuthError("invalid credentials")

        memberships = await self.tenant_context(user)
        token = self._tokens.issue_token(user.id, user.email, memberships)
        role = primary_role_for(user.email, memberships, self._settings.platform_admin_email)
        log.info(
            "svc.auth.login ok user_id=%s role=%s tenant_count=%s",
            user.id,
            role.value,
            len(memberships),
        )
        return {
            "access_token": token,
            "token_type": "Bearer",
            "expires_in": self._tokens.expires_in,
            "user": {
                "id": user.id,
                "email": user.email,
                "name": user.name,
                "role": role.value,
            },
        }

    async def tenant_context(self, user: User) -> list[TenantMembership]:
        """Memberships joined with their tenants, in persisted order."""
        out: list[TenantMembership] = []
        for membership in await self._identity.list_memberships(user.id):
            tenant = await self._tenants.find(membership.tenant_id)
            if tenant is None:
                log.warning(
                    "svc.auth.dangling_membership user_id=%s tenant_id=%s",
                    user.id,
                    membership.tenant_id,
                )
                continue
            out.append(
                TenantMembership(
                    tenant_id=tenant.id,
                    tenant_name=tenant.name,
                    tenant_type=tenant.tenant_type.value,
                    role=membership.role,
                )
            )
        return out

    async def create_user(self, req: CreateUserRequest, created_by: Principal) -> dict[str, Any]:
        password_hash = hash_password(req.password, rounds=self._settings.bcrypt_rounds)
        user = await self._identity.create_user(
            email=str(req.email), name=req.name, password_hash=password_hash
        )
        log.info("svc.auth.create_user user_id=%s created_by=%s", user.id, created_by.id)
        return {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "status": user.status.value,
            "created_at": dt_to_iso(user.created_at),
        }

    async def add_membership(
        self, user_id: str, req: AddMembershipRequest, created_by: Principal
    ) -> dict[str, Any]:
        if await self._identity.get_user(user_id) is None:
            raise NotFoundError("user not found")
        await self._tenants.get(req.tenant_id)
        membership = await self._identity.add_membership(
            user_id=user_id, tenant_id=req.tenant_id, role=req.role
        )
        log.info(
            "svc.auth.add_membership user_id=%s tenant_id=%s role=%s created_by=%s",
            user_id,
            req.tenant_id,
            req.role.value,
            created_by.id,
        )
        return {
            "id": membership.id,
            "user_id": membership.user_id,
            "tenant_id": membership.tenant_id,
            "role": membership.role.value,
            "created_at": dt_to_iso(membership.created_at),
        }

    @staticmethod
    def me(principal: Principal) -> dict[str, Any]:
        return {
            "id": principal.id,
            "email": principal.email,
            "role": principal.primary_role.value,
            "tenants": [m.to_claim() for m in principal.tenant_memberships],
        }

    def _dummy_hash(self) -> str:
        if self._dummy is None:
            self._dummy = hash_password("not-a-real-password", rounds=self._settings.bcrypt_rounds)
        return self._dummy
