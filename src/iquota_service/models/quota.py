"""Normalized quota records.

Every backend, whatever its native report looks like, is normalized into
``QuotaRecord``.  The JSON produced by ``to_json()`` is both the cache
persistence format and the wire format, so field names are camelCase on
the wire and snake_case in Python.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .validators import (
    DEFAULT_QUOTA_TYPES,
    PRINCIPAL_QUOTA_TYPES,
    AbsolutePath,
    GracePeriod,
    NonNegativeInt,
    QuotaType,
)

_WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
    extra="ignore",
)


class Principal(BaseModel):
    """Identity a user or group quota applies to."""

    model_config = _WIRE_CONFIG

    id: str | None = None
    name: str | None = None
    type: str | None = None

    @model_validator(mode="after")
    def _require_identity(self) -> Self:
        if not self.id and not self.name:
            raise ValueError("principal requires an id or a name")
        return self

    @property
    def key(self) -> str:
        """Identifier used in cache keys: the name when known, else the id."""
        return self.name or self.id or ""


class QuotaRecord(BaseModel):
    """One governed path's quota state."""

    model_config = _WIRE_CONFIG

    path: AbsolutePath
    quota_type: QuotaType = "directory"
    principal: Principal | None = None

    used_bytes: NonNegativeInt = 0
    used_inodes: NonNegativeInt = 0

    # 0 means no limit set
    soft_limit_bytes: NonNegativeInt = 0
    hard_limit_bytes: NonNegativeInt = 0
    soft_limit_inodes: NonNegativeInt = 0
    hard_limit_inodes: NonNegativeInt = 0

    grace_period: GracePeriod = None
    soft_exceeded: bool = False
    soft_last_exceeded_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _drop_stale_exceeded_at(cls, data: Any) -> Any:
        """``soft_last_exceeded_at`` only means something while soft is exceeded."""
        if not isinstance(data, dict):
            return data
        exceeded = data.get("soft_exceeded", data.get("softExceeded", False))
        if not exceeded:
            data = {k: v for k, v in data.items() if k not in ("soft_last_exceeded_at", "softLastExceededAt")}
        return data

    @model_validator(mode="after")
    def _check_invariants(self) -> Self:
        if self.hard_limit_bytes > 0 and self.soft_limit_bytes > self.hard_limit_bytes:
            raise ValueError(
                f"soft limit {self.soft_limit_bytes} exceeds hard limit {self.hard_limit_bytes} for {self.path}"
            )
        if self.hard_limit_inodes > 0 and self.soft_limit_inodes > self.hard_limit_inodes:
            raise ValueError(
                f"soft inode limit {self.soft_limit_inodes} exceeds hard inode limit "
                f"{self.hard_limit_inodes} for {self.path}"
            )

        needs_principal = self.quota_type in PRINCIPAL_QUOTA_TYPES
        if needs_principal and self.principal is None:
            raise ValueError(f"{self.quota_type} quota for {self.path} requires a principal")
        if not needs_principal and self.principal is not None:
            raise ValueError(f"{self.quota_type} quota for {self.path} must not carry a principal")
        return self

    @property
    def is_default(self) -> bool:
        return self.quota_type in DEFAULT_QUOTA_TYPES

    @property
    def is_over_quota(self) -> bool:
        """Usage at or past a soft (or, without one, hard) limit."""
        byte_limit = self.soft_limit_bytes or self.hard_limit_bytes
        inode_limit = self.soft_limit_inodes or self.hard_limit_inodes
        if byte_limit and self.used_bytes >= byte_limit:
            return True
        return bool(inode_limit and self.used_inodes >= inode_limit)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "QuotaRecord":
        return cls.model_validate_json(raw)


class QuotaResponse(BaseModel):
    """A set of records, a continuation token, and the path's default quota."""

    model_config = _WIRE_CONFIG

    quotas: list[QuotaRecord] = Field(default_factory=list)
    resume: str | None = None
    default: QuotaRecord | None = None

    @property
    def has_more(self) -> bool:
        """True when the backend has another page behind ``resume``."""
        return bool(self.resume)

    def merged(self, other: "QuotaResponse") -> "QuotaResponse":
        """Concatenate ``other``'s records after ours.

        No de-duplication is done; the continuation token is taken from
        ``other`` and the default is kept from whichever side has one.
        """
        return QuotaResponse(
            quotas=[*self.quotas, *other.quotas],
            resume=other.resume,
            default=self.default or other.default,
        )

    def with_default(self, default: QuotaRecord | None) -> "QuotaResponse":
        return self.model_copy(update={"default": default})

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "QuotaResponse":
        return cls.model_validate_json(raw)
