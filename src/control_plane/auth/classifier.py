from __future__ import annotations

import re
from typing import Iterable

from control_plane.auth.permissions import Permission
from control_plane.configs.logging_config import get_logger

log = get_logger(__name__)

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH"})
DELETE_METHOD = "DELETE"

# Reachable without a bearer token.
PUBLIC_PREFIXES: tuple[str, ...] = (
    "/health",
    "/version",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/auth/login",
    "/domains/resolve",
)

# Need a valid token but no catalog permission; handlers apply their own checks.
AUTHENTICATED_ONLY_PREFIXES: tuple[str, ...] = ("/auth",)

_TENANT_PATH_PATTERNS = (
    re.compile(r"^/tenants/([^/]+)"),
    re.compile(r"^/usage/tenant/([^/]+)"),
    re.compile(r"^/plans/tenant/([^/]+)"),
)


def is_public_path(path: str) -> bool:
    if path == "/":
        return True
    return any(path.startswith(prefix) for prefix in PUBLIC_PREFIXES)


def required_permission(method: str, path: str) -> Permission | None:
    """
    Map an operation to the one permission it needs.

    Prefix order matters: `/admin/dashboard` must be tested before `/admin`.
    Returns None for paths no rule covers, which means no permission is
    required (fail-open).
    """
    method = method.upper()
    is_write = method in WRITE_METHODS
    is_delete = method == DELETE_METHOD

    if path.startswith("/partners"):
        if is_delete:
            return Permission.PARTNERS_DELETE
        return Permission.PARTNERS_WRITE if is_write else Permission.PARTNERS_READ

    if path.startswith("/tenants"):
        if is_delete:
            return Permission.TENANTS_DELETE
        return Permission.TENANTS_WRITE if is_write else Permission.TENANTS_READ

    if path.startswith("/plans"):
        return Permission.PLANS_WRITE if is_write else Permission.PLANS_READ

    if path.startswith("/domains"):
        if "verify" in path.split("/"):
            return Permission.DOMAINS_VERIFY
        return Permission.DOMAINS_WRITE if is_write else Permission.DOMAINS_READ

    # Recording usage is a write, yet it only asks for usage:read.
    if path.startswith("/usage") or path.startswith("/admin/dashboard"):
        return Permission.USAGE_READ

    if path.startswith("/system") or path.startswith("/admin"):
        return Permission.SYSTEM_WRITE if is_write else Permission.SYSTEM_READ

    # unclassified
    return None


def target_tenant_id(path: str) -> str | None:
    """Tenant id addressed by the path itself, e.g. `/tenants/{id}/config`."""
    for pattern in _TENANT_PATH_PATTERNS:
        match = pattern.match(path)
        if match:
            return match.group(1)
    return None


def unclassified_paths(paths: Iterable[str]) -> list[str]:
    """Route paths that are neither public, authenticated-only, nor covered by a rule."""
    out: list[str] = []
    for path in paths:
        if is_public_path(path):
            continue
        if any(path.startswith(prefix) for prefix in AUTHENTICATED_ONLY_PREFIXES):
            continue
        if required_permission("GET", path) is None:
            out.append(path)
    return out


def warn_unclassified_routes(paths: Iterable[str]) -> list[str]:
    missing = unclassified_paths(paths)
    for path in missing:
        log.warning("authz.unclassified_route path=%s requires_no_permission=true", path)
    return missing
