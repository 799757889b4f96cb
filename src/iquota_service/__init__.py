"""
iquota service: cache-aside storage quota reporting.

Normalizes quota records from OneFS, PanFS and VAST into one schema and
serves user, group and directory lookups from a Redis cache, falling back
to the live backend on a miss.
"""

__version__ = "0.1.0"

from .models.quota import Principal, QuotaRecord, QuotaResponse
from .models.validators import PrincipalKind
from .utils.errors import (
    BackendError,
    BadRequestError,
    NotFoundError,
    QuotaServiceError,
    StoreUnavailableError,
    UnauthorizedError,
)

__all__ = [
    "BackendError",
    "BadRequestError",
    "NotFoundError",
    "Principal",
    "PrincipalKind",
    "QuotaRecord",
    "QuotaResponse",
    "QuotaServiceError",
    "StoreUnavailableError",
    "UnauthorizedError",
    "__version__",
]
