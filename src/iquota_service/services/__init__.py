"""Quota resolution services."""

from .access import AccessPolicy, Caller
from .defaults import DefaultQuotaTable
from .quota_service import QuotaService
from .refresh import RefreshResult, refresh_directory_quotas, refresh_principal_quotas

__all__ = [
    "AccessPolicy",
    "Caller",
    "DefaultQuotaTable",
    "QuotaService",
    "RefreshResult",
    "refresh_directory_quotas",
    "refresh_principal_quotas",
]
