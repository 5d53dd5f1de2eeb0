from __future__ import annotations

from dataclasses import dataclass

from control_plane.auth.classifier import is_public_path, required_permission, target_tenant_id
from control_plane.auth.jwt import TokenService, extract_bearer_token
from control_plane.auth.models import Principal
from control_plane.auth.permissions import AccessPolicy, Permission
from control_plane.auth.resolver import TenantAccessResolver
from control_plane.configs.logging_config import get_logger
from control_plane.errors import (
    AccessCheckError,
    AuthError,
    ErrorCode,
    TokenExpiredError,
    TokenInvalidError,
)

log = get_logger(__name__)

_DENY_STATUS = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.TOKEN_EXPIRED: 401,
    ErrorCode.TOKEN_INVALID: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INTERNAL_ERROR: 500,
}


@dataclass(frozen=True)
class AuthzResult:
    allow: bool
    principal: Principal | None = None
    code: str | None = None
    message: str | None = None
    permission: Permission | None = None
    tenant_id: str | None = None

    @classmethod
    def allowed(
        cls,
        principal: Principal | None = None,
        *,
        permission: Permission | None = None,
        tenant_id: str | None = None,
    ) -> AuthzResult:
        return cls(allow=True, principal=principal, permission=permission, tenant_id=tenant_id)

    @classmethod
    def denied(cls, code: str, message: str) -> AuthzResult:
        return cls(allow=False, code=code, message=message)

    @property
    def http_status(self) -> int:
        if self.allow:
            return 200
        return _DENY_STATUS.get(self.code or "", 403)


class AuthorizationEngine:
    """
    Per-request allow/deny pipeline.

    public path -> bearer token -> token verification -> permission check ->
    tenant scoping. Each step can only end the pipeline early; nothing is
    cached between requests and nothing is written.
    """

    def __init__(
        self,
        policy: AccessPolicy,
        tokens: TokenService,
        resolver: TenantAccessResolver,
    ):
        self._policy = policy
        self._tokens = tokens
        self._resolver = resolver

    @property
    def tokens(self) -> TokenService:
        return self._tokens

    @property
    def resolver(self) -> TenantAccessResolver:
        return self._resolver

    async def authorize(
        self, method: str, path: str, authorization: str | None
    ) -> AuthzResult:
        if is_public_path(path):
            return AuthzResult.allowed()

        try:
            token = extract_bearer_token(authorization)
        except AuthError as e:
            log.info("authz.deny code=%s method=%s path=%s", e.code, method, path)
            return AuthzResult.denied(ErrorCode.UNAUTHORIZED, "authorization token required")

        try:
            principal = self._tokens.verify_token(token)
        except TokenExpiredError:
            log.info("authz.deny code=%s method=%s path=%s", ErrorCode.TOKEN_EXPIRED, method, path)
            return AuthzResult.denied(ErrorCode.TOKEN_EXPIRED, "token expired")
        except TokenInvalidError:
            log.warning("authz.deny code=%s method=%s path=%s", ErrorCode.TOKEN_INVALID, method, path)
            return AuthzResult.denied(ErrorCode.TOKEN_INVALID, "invalid token")

        permission = required_permission(method, path)
        if permission is None:
            return AuthzResult.allowed(principal)

        if not self._policy.has_permission(principal.primary_role, permission):
            log.warning(
                "authz.deny code=%s user_id=%s role=%s required_permission=%s",
                ErrorCode.FORBIDDEN,
                principal.id,
                principal.primary_role.value,
                permission.value,
            )
            return AuthzResult.denied(ErrorCode.FORBIDDEN, "insufficient permissions")

        tenant_id = target_tenant_id(path)
        if tenant_id is not None and not principal.is_platform_admin:
            try:
                reachable = await self._resolver.can_access_tenant(principal, tenant_id)
            except AccessCheckError:
                return AuthzResult.denied(ErrorCode.INTERNAL_ERROR, "authorization check failed")
            if not reachable:
                log.warning(
                    "authz.deny code=%s user_id=%s role=%s tenant_id=%s",
                    ErrorCode.FORBIDDEN,
                    principal.id,
                    principal.primary_role.value,
                    tenant_id,
                )
                return AuthzResult.denied(ErrorCode.FORBIDDEN, "access denied to this tenant")

        log.debug(
            "authz.allow user_id=%s role=%s permission=%s tenant_id=%s",
            principal.id,
            principal.primary_role.value,
            permission.value,
            tenant_id,
        )
        return AuthzResult.allowed(principal, permission=permission, tenant_id=tenant_id)
