from __future__ import annotations

from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

MIN_JWT_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """
    Central configuration.

    - Values loaded from `.env` or the process environment
    - Comma-separated lists for multi-value settings like CORS_ORIGINS
    """

    # ----------------------------
    # Service
    # ----------------------------
    SERVICE_NAME: str = "control-plane-api"
    ENVIRONMENT: str = "development"
    API_VERSION: str = "v1"
    LOG_LEVEL: str = "INFO"

    # build metadata, injected by the deploy pipeline
    RELEASE_VERSION: str = "0.1.0"
    GIT_BRANCH: str = "main"
    GIT_COMMIT: str = "unknown"
    BUILD_DATE: str | None = None

    # ----------------------------
    # Mongo
    # ----------------------------
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "control_plane"

    # ----------------------------
    # Redis
    # ----------------------------
    redis_url: str = "redis://localhost:6379/0"
    hostname_cache_ttl_seconds: int = 300

    # ----------------------------
    # CORS
    # ----------------------------
    # store as raw string list from env; we will normalize in code
    CORS_ORIGINS: Any = Field(default_factory=lambda: ["http://localhost:3000"])

    # ----------------------------
    # JWT
    # ----------------------------
    jwt_alg: str = "HS256"
    jwt_secret: str = "change-me"
    jwt_issuer: str = "core.avantle.ai"
    jwt_audience: str = "avantle-platform"
    jwt_expires_in_seconds: int = 24 * 60 * 60

    # ----------------------------
    # Platform admin bootstrap
    # ----------------------------
    platform_admin_email: str = "admin@avantle.ai"

    # ----------------------------
    # Security
    # ----------------------------
    bcrypt_rounds: int = 12
    access_check_timeout_seconds: float = 2.0

    # ----------------------------
    # Platform limits
    # ----------------------------
    max_tenants_per_partner: int = 100
    max_domains_per_tenant: int = 50

    # ----------------------------
    # Domain verification
    # ----------------------------
    domain_verification_scheme: str = "https"
    domain_verification_path: str = "/.well-known/avantle-verification.txt"
    domain_verification_timeout_seconds: float = 5.0

    # Pydantic settings config (v2 style)
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def cors_origins(self) -> list[str]:
        raw_origins = self.CORS_ORIGINS
        if isinstance(raw_origins, str):
            return [o.strip() for o in raw_origins.split(",") if o.strip()]
        if isinstance(raw_origins, (list, tuple, set)):
            return list(raw_origins)
        return []

    def validate_for_startup(self) -> list[str]:
        """Return configuration problems that must stop the service from booting."""
        errors: list[str] = []
        if not self.mongo_uri:
            errors.append("mongo_uri is required")
        if not self.jwt_secret or len(self.jwt_secret) < MIN_JWT_SECRET_LENGTH:
            errors.append(
                f"jwt_secret is required and must be at least {MIN_JWT_SECRET_LENGTH} characters"
            )
        if self.jwt_expires_in_seconds <= 0:
            errors.append("jwt_expires_in_seconds must be positive")
        if self.access_check_timeout_seconds <= 0:
            errors.append("access_check_timeout_seconds must be positive")
        return errors


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
