"""Shared helpers for the iquota service."""

from .errors import (
    BackendError,
    BadRequestError,
    NotFoundError,
    QuotaServiceError,
    StoreUnavailableError,
    UnauthorizedError,
    is_not_found,
)

__all__ = [
    "BackendError",
    "BadRequestError",
    "NotFoundError",
    "QuotaServiceError",
    "StoreUnavailableError",
    "UnauthorizedError",
    "is_not_found",
]
