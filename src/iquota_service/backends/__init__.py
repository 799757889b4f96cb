"""Quota backend adapters."""

from .base import QuotaBackend
from .directory import directory_record
from .onefs import OneFSBackend

__all__ = ["OneFSBackend", "QuotaBackend", "directory_record"]
