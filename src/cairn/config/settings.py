from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CAIRN_",
        env_file=".env",
        extra="ignore",
    )

    # Runtime
    ENVIRONMENT: str = Field(default="dev", description="Environment name")
    HOST: str = Field(default="0.0.0.0", description="Bind host")
    PORT: int = Field(default=7920, description="Bind port")

    # Tenancy
    # single: one database for all tenants (default)
    # db-per-tenant: one database per tenant
    TENANCY_MODE: str = Field(default="single", description="single|db-per-tenant")
    DATABASE_URL_TEMPLATE: str = Field(
        default="",
        description="Optional template for db-per-tenant, e.g. sqlite:///cairn_dev__{tenant_id}.db",
    )
    TENANT_HEADER: str = Field(default="x-tenant-id", description="Tenant header name")

    # Database
    DATABASE_URL: str = Field(default="sqlite:///cairn_dev.db")
    SCHEMA_MODE: str = Field(
        default="create_all",
        description="create_all: auto-create tables (dev), migrations: use Alembic only (prod)",
    )

    # Auth
    AUTH_MODE: str = Field(
        default="optional", description="disabled|optional|required"
    )
    JWT_SECRET_KEY: str = Field(
        default="cairn-dev-secret-change-me",
        description="HS256 secret for dev; override in production",
    )
    JWT_ACCESS_TOKEN_TTL_SECONDS: int = Field(
        default=3600, description="Session token TTL seconds"
    )
    AUTH_LEEWAY_SECONDS: int = Field(default=0, description="JWT exp leeway seconds")

    # Packages (resource registry)
    PACKAGE_DIRS: str = Field(
        default="./packages", description="Comma-separated package manifest directories"
    )

    # Access control
    ACL_CONFLICT_POLICY: str = Field(
        default="last-wins",
        description="last-wins: later rules overlay earlier ones; "
        "most-restrictive: any group revoke beats group grants",
    )
    ACL_STRICT_PACKAGES: bool = Field(
        default=False,
        description="Raise on wildcard rules naming an unregistered package",
    )
    ACL_CACHE_TTL_SECONDS: int = Field(
        default=3600, description="Lifetime of a cached permission map; 0 disables expiry"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
