from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Sequence

from jose import JWTError, jwt

from control_plane.auth.models import Principal, TenantMembership
from control_plane.configs.logging_config import get_logger
from control_plane.configs.settings import Settings
from control_plane.domain.entities.identity import Role
from control_plane.errors import AuthError, InternalError, TokenExpiredError, TokenInvalidError
from control_plane.utils.time_utils import epoch_seconds, utc_now

log = get_logger(__name__)


def extract_bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise AuthError("missing authorization header")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthError("invalid authorization header")
    return token


def primary_role_for(
    email: str, memberships: Sequence[TenantMembership], platform_admin_email: str
) -> Role:
    """
    Pick the single role asserted in the token.

    The bootstrap address is the platform admin; everybody else takes the role of
    their first persisted membership, or TENANT_USER when they have none. A stored
    PLATFORM_ADMIN membership never promotes a user to the global role.
    """
    if email.strip().lower() == platform_admin_email.strip().lower():
        return Role.PLATFORM_ADMIN
    if memberships:
        role = memberships[0].role
        if role is Role.PLATFORM_ADMIN:
            return Role.PARTNER_ADMIN
        return role
    return Role.TENANT_USER


class TokenService:
    """
    Issues and verifies the signed bearer tokens.

    Verification never touches the store: the principal is rebuilt from the
    claims, so membership changes show up only once a new token is issued.
    """

    def __init__(self, settings: Settings, clock: Callable[[], datetime] = utc_now):
        self._settings = settings
        self._clock = clock

    @property
    def expires_in(self) -> int:
        return self._settings.jwt_expires_in_seconds

    def issue_token(
        self,
        user_id: str,
        email: str,
        memberships: Sequence[TenantMembership],
    ) -> str:
        now = self._clock()
        role = primary_role_for(email, memberships, self._settings.platform_admin_email)
        claims: dict[str, Any] = {
            "sub": user_id,
            "email": email,
            "role": role.value,
            "tenant_context": [m.to_claim() for m in memberships],
            "iss": self._settings.jwt_issuer,
            "aud": self._settings.jwt_audience,
            "iat": epoch_seconds(now),
            "exp": epoch_seconds(now + timedelta(seconds=self._settings.jwt_expires_in_seconds)),
        }
        try:
            token = jwt.encode(claims, self._settings.jwt_secret, algorithm=self._settings.jwt_alg)
        except JWTError as e:
            log.error("jwt.encode failed sub=%s error=%s", user_id, str(e))
            raise InternalError("token signing failed") from e
        log.info(
            "jwt.issue ok sub=%s role=%s tenants=%s", user_id, role.value, len(memberships)
        )
        return token

    def verify_token(self, token: str) -> Principal:
        claims = self._decode(token)

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)):
            log.info("jwt.verify missing_exp")
            raise TokenInvalidError("token missing expiry")
        # inclusive boundary: a token is dead at its expiry instant
        if epoch_seconds(self._clock()) >= exp:
            log.info("jwt.verify expired sub=%s exp=%s", claims.get("sub"), exp)
            raise TokenExpiredError("token expired")

        return self._principal_from_claims(claims)

    def _decode(self, token: str) -> dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self._settings.jwt_secret,
                algorithms=[self._settings.jwt_alg],
                audience=self._settings.jwt_audience,
                issuer=self._settings.jwt_issuer,
                # expiry is checked against our own clock after the signature passes
                options={"verify_exp": False},
            )
        except JWTError as e:
            log.info("jwt.decode failed: %s", str(e))
            raise TokenInvalidError("invalid token") from e

    def _principal_from_claims(self, claims: dict[str, Any]) -> Principal:
        sub = claims.get("sub")
        email = claims.get("email")
        if not sub or not email:
            log.info("jwt.verify missing_claims has_sub=%s has_email=%s", bool(sub), bool(email))
            raise TokenInvalidError("token missing required claims")
        try:
            role = Role(claims.get("role"))
            context = claims.get("tenant_context") or []
            if not isinstance(context, list):
                raise TypeError("tenant_context must be a list")
            memberships = tuple(TenantMembership.from_claim(c) for c in context)
        except (KeyError, TypeError, ValueError) as e:
            log.info("jwt.verify bad_claims sub=%s error=%s", sub, str(e))
            raise TokenInvalidError("token carries invalid claims") from e

        return Principal(
            id=str(sub),
            email=str(email),
            primary_role=role,
            tenant_memberships=memberships,
        )
