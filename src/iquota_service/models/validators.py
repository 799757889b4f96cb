"""Shared Pydantic types and validators for reuse across models.

Centralises path checks, non-negative counters, and the quota type
literals so every model speaks the same language.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BeforeValidator, Field

# ---------------------------------------------------------------------------
# Literal enums
# ---------------------------------------------------------------------------

QuotaType = Literal["directory", "user", "group", "default-user", "default-group"]

PRINCIPAL_QUOTA_TYPES: frozenset[str] = frozenset({"user", "group"})
DEFAULT_QUOTA_TYPES: frozenset[str] = frozenset({"default-user", "default-group"})


class PrincipalKind(str, Enum):
    """Principal kind as it appears in cache keys."""

    USER = "USER"
    GROUP = "GROUP"

    @property
    def quota_type(self) -> str:
        return self.value.lower()


# ---------------------------------------------------------------------------
# Numeric types
# ---------------------------------------------------------------------------


def _none_to_zero(v: Any) -> Any:
    return 0 if v is None else v


NonNegativeInt = Annotated[int, BeforeValidator(_none_to_zero), Field(ge=0)]
"""Integer >= 0 for byte and inode counts; ``None`` reads as 0 (no limit)."""


# ---------------------------------------------------------------------------
# String constraints
# ---------------------------------------------------------------------------


def _require_absolute(v: str) -> str:
    if not v.startswith("/"):
        raise ValueError(f"path must be absolute: {v!r}")
    return v


AbsolutePath = Annotated[str, Field(min_length=1), AfterValidator(_require_absolute)]
"""Absolute filesystem path governed by a quota."""

GracePeriod = str | int | None
"""Soft grace period: seconds, or a human readable string such as ``"7 days"``."""
