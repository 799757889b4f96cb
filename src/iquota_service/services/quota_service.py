"""Quota service: cache-aside resolution and aggregation of quota records."""

import logging

from ..backends.base import QuotaBackend
from ..cache.redis_cache import QuotaCache, ScanResult, negative_cache_key, quota_cache_key
from ..config import CacheSettings
from ..models.quota import QuotaRecord, QuotaResponse
from ..models.validators import PrincipalKind
from ..utils.errors import BadRequestError, NotFoundError, QuotaServiceError, is_not_found
from .access import AccessPolicy, Caller
from .defaults import DefaultQuotaTable
from .listing import collect_pages

logger = logging.getLogger(__name__)

GROUP_PATTERN_PREFIX = "grp-"


class QuotaService:
    """
    Answers quota lookups from the cache when it can and the backend when
    it must.

    Negative entries are trusted until they expire: a quota created after
    a principal was cached as not found stays hidden for up to
    ``neg_cache_expire`` seconds.  Concurrent misses on the same key may
    both reach the backend; the last write wins.
    """

    def __init__(
        self,
        backend: QuotaBackend,
        cache: QuotaCache | None,
        settings: CacheSettings,
        defaults: DefaultQuotaTable | None = None,
        policy: AccessPolicy | None = None,
    ):
        self.backend = backend
        self.cache = cache
        self.settings = settings
        self.policy = policy or AccessPolicy()
        self._defaults = defaults or DefaultQuotaTable()

    @property
    def cache_enabled(self) -> bool:
        return self.settings.enable_cache and self.cache is not None

    @property
    def defaults(self) -> DefaultQuotaTable:
        return self._defaults

    async def close(self) -> None:
        """Close the backend and the cache."""
        await self.backend.close()
        if self.cache is not None:
            await self.cache.close()

    async def reload_defaults(self) -> DefaultQuotaTable:
        """Rebuild the default quota table from the backend and swap it in."""
        table = await DefaultQuotaTable.load(self.backend)
        self._defaults = table
        return table

    # ------------------------------------------------------------------
    # Single principal
    # ------------------------------------------------------------------

    async def resolve(
        self,
        path: str,
        kind: PrincipalKind | str,
        principal: str,
        use_cache: bool = True,
    ) -> QuotaResponse:
        """
        Current quota of ``principal`` on ``path``.

        Args:
            path: Absolute path the quota governs
            kind: USER or GROUP
            principal: User or group name
            use_cache: Set False to go straight to the backend for this call

        Raises:
            NotFoundError: The backend has no quota, or a live negative entry says so
            StoreUnavailableError: The cache could not be reached
            QuotaServiceError: Any other backend error, passed through untouched
        """
        kind = PrincipalKind(kind)
        cached = use_cache and self.cache_enabled

        if cached:
            if await self.cache.is_negative(path, kind, principal):
                logger.debug(f"Negative cache hit for {kind.value} {principal} on {path}")
                raise NotFoundError(f"{kind.quota_type.capitalize()} not found")

            try:
                response = await self.cache.get(quota_cache_key(path, kind, principal))
            except ValueError as e:
                logger.warning(f"Ignoring corrupt cache entry for {kind.value} {principal} on {path}: {e}")
                response = None
            if response is not None:
                return response

        try:
            response = await self.backend.fetch_principal_quota(path, kind, principal)
        except QuotaServiceError as e:
            if not is_not_found(e):
                logger.error(f"Failed to fetch {kind.quota_type} quota for {principal} on {path}: {e}")
                raise
            if cached:
                await self.cache.set_negative(negative_cache_key(path, kind, principal))
            raise NotFoundError(e.message) from e

        if cached:
            await self.cache.set(quota_cache_key(path, kind, principal), response)
        return response

    async def get_user_quota(self, caller: Caller, path: str, user: str | None = None) -> QuotaResponse:
        """
        User quota for ``user`` (the caller when omitted) with the path's
        default user quota attached.
        """
        if not path:
            raise BadRequestError("Path is required")

        uid = self.policy.user_to_view(caller, user)
        response = await self.resolve(path, PrincipalKind.USER, uid)
        return QuotaResponse(quotas=response.quotas, default=self._defaults.user(path))

    async def get_group_quota(self, caller: Caller, path: str, group: str | None = None) -> QuotaResponse:
        """
        Group quotas for ``group``, or for every group of the caller.

        When expanding the caller's groups, groups without a quota are
        skipped; an explicitly named group without one is an error.
        """
        if not path:
            raise BadRequestError("Path is required")

        groups = self.policy.groups_to_view(caller, group)
        logger.info(f"Group quota lookup for {caller.uid}: groups={groups}")

        quotas: list[QuotaRecord] = []
        for name in groups:
            # Group names may not contain spaces
            name = name.replace(" ", "")
            try:
                response = await self.resolve(path, PrincipalKind.GROUP, name)
            except NotFoundError:
                if group:
                    raise
                continue
            quotas.extend(response.quotas)

        return QuotaResponse(quotas=quotas, default=self._defaults.group(path))

    # ------------------------------------------------------------------
    # Multi entity
    # ------------------------------------------------------------------

    async def find_quotas(self, pattern: str) -> ScanResult:
        """
        Cache-only lookup of every record whose key contains ``pattern``.

        There is no backend fallback; the cache is expected to have been
        populated by a bulk refresher.
        """
        if pattern.startswith(GROUP_PATTERN_PREFIX):
            pattern = pattern[len(GROUP_PATTERN_PREFIX) :]

        if not self.cache_enabled:
            logger.debug(f"Pattern lookup {pattern!r} with caching disabled")
            return ScanResult()

        return await self.cache.find_by_pattern(pattern)

    async def list_all_quotas(
        self,
        caller: Caller,
        path: str | None = None,
        quota_type: str | None = None,
    ) -> QuotaResponse:
        """
        Every quota the backend lists, followed by cache-only quotas.

        Backend pages come first in order, then cache entries under
        ``cache_only_prefix``.  Records present in both sources appear
        twice; callers de-duplicate if they need to.
        """
        self.policy.require_admin(caller)

        response = await collect_pages(self.backend, path, quota_type)

        if self.cache_enabled:
            cached = await self.cache.scan_prefix(self.settings.cache_only_prefix, quota_type)
            logger.info(f"Found {len(cached.records)} quotas from cache")
            response = QuotaResponse(quotas=[*response.quotas, *cached.records])

        return response

    async def list_over_quota(self, caller: Caller, path: str | None = None) -> QuotaResponse:
        """Quotas at or past their limit, straight from the backend."""
        self.policy.require_admin(caller)
        return await self.backend.fetch_over_quota(path)

    def list_default_quotas(self) -> list[QuotaRecord]:
        return self._defaults.records()
