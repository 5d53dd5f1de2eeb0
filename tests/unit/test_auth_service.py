from __future__ import annotations

import pytest

from control_plane.auth.jwt import TokenService
from control_plane.auth.passwords import hash_password
from control_plane.domain.entities.identity import LoginRequest, Role, UserStatus
from control_plane.errors import AuthError, ErrorCode
from control_plane.services import auth_service as auth_service_module
from control_plane.services.auth_service import AuthService

from fakes import (
    FakeIdentityRepo,
    FakeTenantRepo,
    FixedClock,
    make_settings,
    make_tenant,
    make_user,
)

PASSWORD = "correct horse battery"


@pytest.fixture
def service() -> AuthService:
    settings = make_settings()
    password_hash = hash_password(PASSWORD, rounds=4)
    identity = FakeIdentityRepo(
        users=[
            make_user("u1", "alice@example.com", password_hash),
            make_user("u2", "bob@example.com", password_hash, UserStatus.DISABLED),
            make_user("u3", "carol@example.com", None),
        ],
        memberships=[("u1", "t1", Role.TENANT_ADMIN), ("u1", "gone", Role.TENANT_USER)],
    )
    tenants = FakeTenantRepo(make_tenant("t1", "p1"))
    return AuthService(identity, tenants, TokenService(settings, clock=FixedClock()), settings)


@pytest.fixture
def bcrypt_checks(monkeypatch) -> list[str | None]:
    seen: list[str | None] = []
    real = auth_service_module.verify_password

    def counting(password, password_hash):
        seen.append(password_hash)
        return real(password, password_hash)

    monkeypatch.setattr(auth_service_module, "verify_password", counting)
    return seen


@pytest.mark.asyncio
async def test_login_issues_token_with_tenant_context(service) -> None:
    out = await service.login(LoginRequest(email="Alice@Example.com", password=PASSWORD))

    assert out["token_type"] == "Bearer"
    assert out["user"]["role"] == "TENANT_ADMIN"
    p = TokenService(make_settings(), clock=FixedClock()).verify_token(out["access_token"])
    # the membership pointing at a deleted tenant is dropped
    assert p.tenant_ids == ("t1",)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "email, password",
    [
        ("alice@example.com", "wrong password"),
        ("bob@example.com", PASSWORD),
        ("carol@example.com", PASSWORD),
        ("nobody@example.com", PASSWORD),
    ],
)
async def test_rejected_logins_are_indistinguishable(service, email, password) -> None:
    with pytest.raises(AuthError) as exc:
        await service.login(LoginRequest(email=email, password=password))

    assert exc.value.code == ErrorCode.UNAUTHORIZED
    assert exc.value.http_status == 401
    assert exc.value.message == "invalid credentials"


@pytest.mark.asyncio
@pytest.mark.parametrize("email", ["nobody@example.com", "carol@example.com", "bob@example.com"])
async def test_every_rejected_login_runs_one_bcrypt_check(service, bcrypt_checks, email) -> None:
    with pytest.raises(AuthError):
        await service.login(LoginRequest(email=email, password=PASSWORD))

    assert len(bcrypt_checks) == 1
    assert bcrypt_checks[0].startswith("$2")
