from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request

from control_plane.auth.models import Principal
from control_plane.auth.resolver import TenantAccessResolver
from control_plane.configs.logging_config import get_logger
from control_plane.domain.entities.identity import Role
from control_plane.errors import AuthError, ForbiddenError

log = get_logger(__name__)


async def get_principal(request: Request) -> Principal:
    """
    The principal the authorization middleware attached to this request.

    Routes on public paths have none; asking for it there is a wiring bug that
    surfaces as 401 rather than an anonymous principal.
    """
    principal = getattr(request.state, "principal", None)
    if principal is None:
        log.info("auth.no_principal path=%s", request.url.path)
        raise AuthError("authentication required")
    return principal


def get_resolver(request: Request) -> TenantAccessResolver:
    return request.app.state.authz_engine.resolver


def require_role(*roles: Role) -> Callable[..., Principal]:
    allowed = frozenset(roles)

    async def _dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if principal.primary_role not in allowed:
            log.info(
                "auth.role_denied user_id=%s role=%s allowed=%s",
                principal.id,
                principal.primary_role.value,
                sorted(r.value for r in allowed),
            )
            raise ForbiddenError("insufficient permissions")
        return principal

    return _dependency
