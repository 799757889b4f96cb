"""Quota data models."""

from .quota import Principal, QuotaRecord, QuotaResponse
from .validators import PrincipalKind, QuotaType

__all__ = ["Principal", "PrincipalKind", "QuotaRecord", "QuotaResponse", "QuotaType"]
