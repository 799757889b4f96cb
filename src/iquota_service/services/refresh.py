"""Bulk cache refresh for backends without cheap live lookups.

Refreshers run out of band (cron, systemd timers) and push whole quota
reports into the cache so that pattern lookups and full listings can be
served without touching the backend.  A failure on one entry is logged
and counted; the rest of the batch still gets written.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..backends.base import QuotaBackend
from ..cache.redis_cache import QuotaCache, negative_cache_key
from ..models.quota import QuotaRecord
from ..models.validators import PrincipalKind
from ..utils.errors import QuotaServiceError, StoreUnavailableError, is_not_found

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    """Counters for one refresh run."""

    written: int = 0
    not_found: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0


async def refresh_directory_quotas(
    records: Iterable[QuotaRecord],
    cache: QuotaCache,
    ttl_seconds: int | None = None,
) -> RefreshResult:
    """
    Write directory quotas under their bare path keys.

    Args:
        records: Normalized directory records (see ``directory_record``)
        cache: Initialized quota cache
        ttl_seconds: Override for the cache's positive TTL
    """
    result = RefreshResult()
    for record in records:
        try:
            await cache.set_directory_quota(record, ttl_seconds)
        except StoreUnavailableError as e:
            result.failed += 1
            result.errors.append(f"{record.path}: {e}")
            logger.error(f"Failed to set directory quota cache for {record.path}: {e}")
            continue
        result.written += 1
        logger.debug(f"Cached directory quota for {record.path}")

    logger.info(f"Directory refresh wrote {result.written} quotas ({result.failed} failed)")
    return result


async def refresh_principal_quotas(
    backend: QuotaBackend,
    cache: QuotaCache,
    path: str,
    kind: PrincipalKind | str,
    principals: Iterable[str],
) -> RefreshResult:
    """
    Warm USER or GROUP entries for ``principals`` from a live backend.

    Principals the backend has no quota for get a negative entry, exactly
    as an on-demand lookup would write.
    """
    kind = PrincipalKind(kind)
    result = RefreshResult()

    for principal in principals:
        try:
            response = await backend.fetch_principal_quota(path, kind, principal)
            await cache.set_principal_quota(path, kind, principal, response)
        except QuotaServiceError as e:
            if is_not_found(e):
                try:
                    await cache.set_negative(negative_cache_key(path, kind, principal))
                except StoreUnavailableError as store_error:
                    result.failed += 1
                    result.errors.append(f"{principal}: {store_error}")
                    continue
                result.not_found += 1
                continue
            result.failed += 1
            result.errors.append(f"{principal}: {e}")
            logger.error(f"Failed to refresh {kind.quota_type} quota for {principal} on {path}: {e}")
            continue
        result.written += 1

    logger.info(
        f"Refreshed {kind.quota_type} quotas on {path}: {result.written} written, "
        f"{result.not_found} not found, {result.failed} failed"
    )
    return result
