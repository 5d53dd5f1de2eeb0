from __future__ import annotations

import pytest

from control_plane.auth.engine import AuthorizationEngine
from control_plane.auth.jwt import TokenService
from control_plane.auth.permissions import AccessPolicy
from control_plane.auth.resolver import TenantAccessResolver
from control_plane.domain.entities.identity import Role

from fakes import FixedClock, InMemoryDirectory, make_settings, membership


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def tokens(clock) -> TokenService:
    return TokenService(make_settings(), clock=clock)


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory(
        memberships=[
            ("pa", "t1", Role.PARTNER_ADMIN),
            ("ta", "t1", Role.TENANT_ADMIN),
            ("tu", "t1", Role.TENANT_USER),
        ],
        tenant_partner={"t1": "p1", "t2": "p1", "t3": "p2"},
    )


@pytest.fixture
def engine(tokens, directory) -> AuthorizationEngine:
    resolver = TenantAccessResolver(directory, timeout_seconds=0.5)
    return AuthorizationEngine(AccessPolicy.default(), tokens, resolver)


@pytest.fixture
def bearer(tokens):
    """Build an Authorization header for one of the fixture users."""

    roles = {"pa": Role.PARTNER_ADMIN, "ta": Role.TENANT_ADMIN, "tu": Role.TENANT_USER}

    def _bearer(user_id: str) -> str:
        if user_id == "root":
            return "Bearer " + tokens.issue_token("root", "root@example.com", [])
        ms = [membership("t1", roles[user_id])]
        return "Bearer " + tokens.issue_token(user_id, f"{user_id}@example.com", ms)

    return _bearer
