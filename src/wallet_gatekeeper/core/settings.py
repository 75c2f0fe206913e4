"""Application settings and configuration.

This module defines all configuration options for the Wallet Gatekeeper service.
Settings are loaded from environment variables with sensible defaults.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_SQL_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")
_ASYMMETRIC_ALGORITHMS = frozenset(
    {"RS256", "RS384", "RS512", "PS256", "PS384", "PS512", "ES256", "ES384", "ES512"}
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    Secrets (public key material, encryption key reference) have no usable
    default: when they are missing the affected component fails closed.
    """

    # Application metadata
    app_name: str = Field(default="Wallet Gatekeeper", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Used to key recipient fingerprints; never leaves the process
    secret_key: str = Field(alias="SECRET_KEY")
    internal_api_key: str | None = Field(default=None, alias="INTERNAL_API_KEY")

    # Database configuration
    database_url: str = Field(default="sqlite:///./gatekeeper.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    rls_bind_function: str = Field(
        default="set_current_wallet_address",
        alias="RLS_BIND_FUNCTION",
    )

    # Bearer token verification
    jwt_public_key: str | None = Field(default=None, alias="JWT_PUBLIC_KEY")
    jwt_algorithm: str = Field(default="RS256", alias="JWT_ALGORITHM")
    jwt_issuer: str = Field(default="thirdweb.com", alias="JWT_ISSUER")

    # Per-client request budget
    rate_limit_points: int = Field(default=100, ge=1, alias="RATE_LIMIT_POINTS")
    rate_limit_duration_seconds: int = Field(
        default=60,
        ge=1,
        alias="RATE_LIMIT_DURATION_SECONDS",
    )
    rate_limit_block_seconds: int = Field(default=60, ge=0, alias="RATE_LIMIT_BLOCK_SECONDS")

    # Encryption boundary for recipient PII
    encryption_backend: str = Field(default="database", alias="ENCRYPTION_BACKEND")
    encryption_key: str | None = Field(default=None, alias="ENCRYPTION_KEY")
    max_recipients_per_wallet: int = Field(default=100, ge=1, alias="MAX_RECIPIENTS_PER_WALLET")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @field_validator("jwt_algorithm")
    @classmethod
    def _require_asymmetric_algorithm(cls, value: str) -> str:
        algorithm = value.strip().upper()
        if algorithm not in _ASYMMETRIC_ALGORITHMS:
            raise ValueError(f"JWT_ALGORITHM must be an asymmetric algorithm, got {value!r}")
        return algorithm

    @field_validator("rls_bind_function")
    @classmethod
    def _require_plain_identifier(cls, value: str) -> str:
        if not _SQL_IDENTIFIER.match(value):
            raise ValueError("RLS_BIND_FUNCTION must be a plain SQL function name")
        return value

    @field_validator("encryption_backend")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        backend = value.strip().lower()
        if backend not in {"database", "local"}:
            raise ValueError("ENCRYPTION_BACKEND must be 'database' or 'local'")
        return backend


settings = Settings()  # type: ignore[call-arg]
