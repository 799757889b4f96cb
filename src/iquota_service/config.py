"""
Configuration for the iquota service.

Each concern gets its own ``BaseSettings`` class with a dedicated
environment prefix; ``Settings`` aggregates them and a module-level
``settings`` instance is what the rest of the package imports.

Environment variables:
    IQUOTA_CACHE_ENABLE_CACHE, IQUOTA_CACHE_REDIS_URL,
    IQUOTA_CACHE_CACHE_EXPIRE, IQUOTA_CACHE_NEG_CACHE_EXPIRE,
    IQUOTA_CACHE_HOME_DIR, IQUOTA_CACHE_CACHE_ONLY_PREFIX
    IQUOTA_ADMINS (comma separated or JSON list)
    IQUOTA_ONEFS_HOST, IQUOTA_ONEFS_PORT, IQUOTA_ONEFS_USER,
    IQUOTA_ONEFS_PASSWORD, IQUOTA_ONEFS_VERIFY_TLS
"""

import json
from typing import Annotated, Any

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class CacheSettings(BaseSettings):
    """Redis cache-aside configuration."""

    model_config = SettingsConfigDict(env_prefix="IQUOTA_CACHE_", extra="ignore")

    enable_cache: bool = Field(default=False, description="Consult and populate the quota cache")
    redis_url: str = Field(default="redis://localhost:6379", description="Redis connection URL")
    cache_expire: int = Field(default=500, ge=1, description="TTL in seconds for positive entries")
    neg_cache_expire: int = Field(
        default=86400,
        ge=1,
        description="TTL in seconds for negative (not found) entries; bounds how long a new quota can stay hidden",
    )
    home_dir: str = Field(default="/home", description="Path prefix excluded from pattern scans")
    cache_only_prefix: str = Field(
        default="/panasas",
        description="Path prefix of quotas that only exist in cache, unioned into full listings",
    )
    key_prefix: str = Field(default="", description="Optional namespace prepended to every cache key")
    max_connections: int = Field(default=10, ge=1, le=1000)


class AccessSettings(BaseSettings):
    """Who may view other principals' quotas."""

    model_config = SettingsConfigDict(env_prefix="IQUOTA_", extra="ignore")

    admins: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="User ids or group names with elevated view rights",
    )

    @field_validator("admins", mode="before")
    @classmethod
    def _split_admins(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                return json.loads(v)
            return [a.strip() for a in v.split(",") if a.strip()]
        return v


class OneFSSettings(BaseSettings):
    """Isilon OneFS REST API connection."""

    model_config = SettingsConfigDict(env_prefix="IQUOTA_ONEFS_", extra="ignore")

    host: str = "localhost"
    port: int = Field(default=8080, ge=1, le=65535)
    user: str = ""
    password: SecretStr = SecretStr("")
    verify_tls: bool = False
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1, le=10)


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(extra="ignore")

    cache: CacheSettings = Field(default_factory=CacheSettings)
    access: AccessSettings = Field(default_factory=AccessSettings)
    onefs: OneFSSettings = Field(default_factory=OneFSSettings)


settings = Settings()
