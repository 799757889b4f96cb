"""Redis cache for quota records."""

from .redis_cache import (
    QuotaCache,
    ScanResult,
    decode_response,
    directory_cache_key,
    negative_cache_key,
    quota_cache_key,
)

__all__ = [
    "QuotaCache",
    "ScanResult",
    "decode_response",
    "directory_cache_key",
    "negative_cache_key",
    "quota_cache_key",
]
