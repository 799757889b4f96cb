"""
Redis cache for normalized quota records.

Provides the cache-aside store shared by the resolver and the out-of-band
refreshers:
- Wire-compatible key scheme (``<path>:<KIND>:<principal>``, negative
  entries under ``<path>:<KIND>-NEG:<principal>``, bare ``<path>`` for
  directory quotas)
- Independent TTLs for positive and negative entries
- Best-effort pattern scans that skip corrupt entries instead of failing
- JSON serialization in the camelCase wire format

Store connectivity failures are raised as ``StoreUnavailableError`` and
are never reported as a cache miss.
"""

import json
import logging
from dataclasses import dataclass, field

from pydantic import ValidationError
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError, ResponseError

from ..config import CacheSettings
from ..models.quota import QuotaRecord, QuotaResponse
from ..models.validators import PrincipalKind
from ..utils.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

NEGATIVE_SUFFIX = "-NEG"

_GLOB_SPECIAL = frozenset("*?[]\\")


def quota_cache_key(path: str, kind: PrincipalKind | str, principal: str) -> str:
    """Key for a user or group quota: ``<path>:<KIND>:<principal>``."""
    return f"{path}:{PrincipalKind(kind).value}:{principal}"


def negative_cache_key(path: str, kind: PrincipalKind | str, principal: str) -> str:
    """Key for a not-found marker: ``<path>:<KIND>-NEG:<principal>``."""
    return f"{path}:{PrincipalKind(kind).value}{NEGATIVE_SUFFIX}:{principal}"


def directory_cache_key(path: str) -> str:
    """Directory quotas are keyed by the bare path."""
    return path


def is_negative_key(key: str) -> bool:
    return f"{NEGATIVE_SUFFIX}:" in key


def escape_glob(text: str) -> str:
    """Escape Redis ``MATCH`` metacharacters so ``text`` matches literally."""
    return "".join(f"\\{c}" if c in _GLOB_SPECIAL else c for c in text)


def decode_response(raw: str | bytes) -> QuotaResponse:
    """
    Decode a cached value.

    Principal entries hold a serialized ``QuotaResponse``; directory entries
    written by refreshers hold a bare ``QuotaRecord``, which is wrapped.

    Raises:
        ValueError: The value is not valid JSON or does not match either schema
    """
    data = json.loads(raw)
    if isinstance(data, dict) and ("quotas" in data or "resume" in data or "default" in data):
        return QuotaResponse.model_validate(data)
    return QuotaResponse(quotas=[QuotaRecord.model_validate(data)])


@dataclass
class ScanResult:
    """Records recovered by a pattern scan, with a count of skipped entries."""

    records: list[QuotaRecord] = field(default_factory=list)
    skipped: int = 0
    keys_scanned: int = 0


class QuotaCache:
    """
    Redis-backed quota cache.

    Uses a connection pool opened by ``initialize()``; every operation
    borrows a connection for the duration of the call only.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379",
        ttl_seconds: int = 500,
        neg_ttl_seconds: int = 86400,
        home_dir: str = "/home",
        key_prefix: str = "",
        max_connections: int = 10,
    ):
        """
        Initialize quota cache.

        Args:
            url: Redis connection URL
            ttl_seconds: TTL for positive entries
            neg_ttl_seconds: TTL for negative (not found) entries
            home_dir: Path prefix whose keys are excluded from pattern scans
            key_prefix: Optional namespace prepended to every key
            max_connections: Maximum Redis connections in pool
        """
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.neg_ttl_seconds = neg_ttl_seconds
        self.home_dir = home_dir
        self.key_prefix = key_prefix
        self.max_connections = max_connections

        self._pool: ConnectionPool | None = None
        self._redis: Redis | None = None
        self._initialized = False

    @classmethod
    def from_settings(cls, cache_settings: CacheSettings) -> "QuotaCache":
        return cls(
            url=cache_settings.redis_url,
            ttl_seconds=cache_settings.cache_expire,
            neg_ttl_seconds=cache_settings.neg_cache_expire,
            home_dir=cache_settings.home_dir,
            key_prefix=cache_settings.key_prefix,
            max_connections=cache_settings.max_connections,
        )

    async def initialize(self) -> None:
        """Initialize Redis connection pool."""
        if self._initialized:
            return

        self._pool = ConnectionPool.from_url(
            self.url,
            max_connections=self.max_connections,
            decode_responses=True,
        )
        self._redis = Redis(connection_pool=self._pool)

        try:
            await self._redis.ping()
        except (RedisError, OSError) as e:
            logger.error(f"QuotaCache initialization failed: {e}")
            await self.close()
            raise StoreUnavailableError(f"Failed connecting to redis server at {self.url}: {e}") from e

        self._initialized = True
        logger.info(
            f"QuotaCache initialized: {self.url} (TTL={self.ttl_seconds}s, negative TTL={self.neg_ttl_seconds}s)"
        )

    async def close(self) -> None:
        """Close Redis connection pool."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

        if self._pool:
            await self._pool.aclose()
            self._pool = None

        self._initialized = False

    async def __aenter__(self) -> "QuotaCache":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _make_key(self, key: str) -> str:
        """Add prefix to key."""
        return f"{self.key_prefix}{key}"

    def _strip_prefix(self, full_key: str) -> str:
        if self.key_prefix and full_key.startswith(self.key_prefix):
            return full_key[len(self.key_prefix) :]
        return full_key

    def _client(self) -> Redis:
        if not self._initialized or self._redis is None:
            raise StoreUnavailableError("Quota cache is not initialized")
        return self._redis

    # ------------------------------------------------------------------
    # Single key operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> QuotaResponse | None:
        """
        Get cached quotas by key.

        Args:
            key: Cache key (without prefix)

        Returns:
            The cached response, or None when the key is absent or expired

        Raises:
            StoreUnavailableError: Redis could not be reached
            ValueError: The stored value could not be decoded
        """
        redis = self._client()
        try:
            raw = await redis.get(self._make_key(key))
        except (ResponseError, UnicodeDecodeError) as e:
            # Wrong key type or undecodable bytes: the entry is bad, the store is fine
            logger.error(f"Failed to read cached quota for key {key}: {e}")
            raise ValueError(f"Corrupt cache entry {key}: {e}") from e
        except (RedisError, OSError) as e:
            logger.error(f"Failed to fetch quota from cache for key {key}: {e}")
            raise StoreUnavailableError(f"Failed to fetch {key} from cache: {e}") from e

        if raw is None:
            logger.debug(f"Cache miss: {key}")
            return None

        try:
            response = decode_response(raw)
        except (ValueError, ValidationError) as e:
            logger.error(f"Failed to decode cached quota for key {key}: {e}")
            raise ValueError(f"Corrupt cache entry {key}: {e}") from e

        logger.debug(f"Cache hit: {key}")
        return response

    async def set(
        self,
        key: str,
        value: QuotaResponse | QuotaRecord,
        ttl_seconds: int | None = None,
    ) -> None:
        """
        Store a value with TTL, overwriting any previous value.

        Args:
            key: Cache key (without prefix)
            value: Response or single record to cache
            ttl_seconds: Override for the positive TTL

        Raises:
            StoreUnavailableError: Redis could not be reached
        """
        redis = self._client()
        ttl = ttl_seconds or self.ttl_seconds
        try:
            await redis.setex(self._make_key(key), ttl, value.to_json())
        except (RedisError, OSError) as e:
            logger.error(f"Failed to set cache for key {key}: {e}")
            raise StoreUnavailableError(f"Failed to set {key} in cache: {e}") from e

    async def set_negative(self, key: str, ttl_seconds: int | None = None) -> None:
        """Store an empty marker meaning "confirmed absent" under ``key``."""
        await self.set(key, QuotaResponse(), ttl_seconds or self.neg_ttl_seconds)
        logger.debug(f"Negative cache entry written: {key}")

    async def exists(self, key: str) -> bool:
        redis = self._client()
        try:
            return bool(await redis.exists(self._make_key(key)))
        except (RedisError, OSError) as e:
            logger.error(f"Failed to check cache for key {key}: {e}")
            raise StoreUnavailableError(f"Failed to check {key} in cache: {e}") from e

    async def delete(self, key: str) -> bool:
        """
        Delete cached value.

        Returns:
            True if a key was removed
        """
        redis = self._client()
        try:
            return bool(await redis.delete(self._make_key(key)))
        except (RedisError, OSError) as e:
            logger.error(f"Failed to delete cache key {key}: {e}")
            raise StoreUnavailableError(f"Failed to delete {key} from cache: {e}") from e

    # ------------------------------------------------------------------
    # Principal and directory helpers
    # ------------------------------------------------------------------

    async def get_principal_quota(self, path: str, kind: PrincipalKind | str, principal: str) -> QuotaResponse | None:
        return await self.get(quota_cache_key(path, kind, principal))

    async def set_principal_quota(
        self,
        path: str,
        kind: PrincipalKind | str,
        principal: str,
        response: QuotaResponse,
        ttl_seconds: int | None = None,
    ) -> None:
        """Write a positive entry and drop any negative marker it supersedes."""
        await self.set(quota_cache_key(path, kind, principal), response, ttl_seconds)
        await self.delete(negative_cache_key(path, kind, principal))

    async def get_group_quota(self, path: str, group: str) -> QuotaResponse | None:
        return await self.get_principal_quota(path, PrincipalKind.GROUP, group)

    async def set_group_quota(self, path: str, group: str, response: QuotaResponse) -> None:
        await self.set_principal_quota(path, PrincipalKind.GROUP, group, response)

    async def is_negative(self, path: str, kind: PrincipalKind | str, principal: str) -> bool:
        """True while a not-found marker for this principal is alive."""
        return await self.exists(negative_cache_key(path, kind, principal))

    async def set_group_negative(self, path: str, group: str) -> None:
        await self.set_negative(negative_cache_key(path, PrincipalKind.GROUP, group))

    async def get_directory_quota(self, path: str) -> QuotaRecord | None:
        response = await self.get(directory_cache_key(path))
        if response is None or not response.quotas:
            return None
        return response.quotas[0]

    async def set_directory_quota(self, record: QuotaRecord, ttl_seconds: int | None = None) -> None:
        await self.set(directory_cache_key(record.path), record, ttl_seconds)

    # ------------------------------------------------------------------
    # Scans
    # ------------------------------------------------------------------

    async def find_by_pattern(self, pattern: str) -> ScanResult:
        """
        Collect records from every key containing ``pattern``.

        Keys under ``home_dir`` and negative markers are skipped.  Entries
        that fail to decode, or whose key holds a non-string type, are
        skipped and counted rather than failing the scan, so one corrupt
        entry cannot blank out a whole group's view.

        Raises:
            StoreUnavailableError: Redis could not be reached
        """
        match = self._make_key(f"*{escape_glob(pattern)}*")
        return await self._scan(match, lambda key: not self._in_home_dir(key))

    async def scan_prefix(self, prefix: str, quota_type: str | None = None) -> ScanResult:
        """
        Collect records from every key under ``prefix``.

        When ``quota_type`` is given only keys containing it
        (case-insensitively) are read.  Same skip policy as
        ``find_by_pattern``.
        """
        match = self._make_key(f"{escape_glob(prefix)}*")
        needle = quota_type.lower() if quota_type else None

        def wanted(key: str) -> bool:
            return needle is None or needle in key.lower()

        return await self._scan(match, wanted)

    def _in_home_dir(self, key: str) -> bool:
        return bool(self.home_dir) and key.startswith(self.home_dir)

    async def _scan(self, match: str, wanted) -> ScanResult:
        redis = self._client()
        result = ScanResult()

        try:
            async for full_key in redis.scan_iter(match=match, count=500):
                key = self._strip_prefix(full_key)
                if is_negative_key(key) or not wanted(key):
                    continue

                result.keys_scanned += 1
                try:
                    raw = await redis.get(full_key)
                    if raw is None:
                        # Expired between SCAN and GET
                        continue
                    records = decode_response(raw).quotas
                except (ResponseError, UnicodeDecodeError, ValueError, ValidationError) as e:
                    result.skipped += 1
                    logger.warning(f"Skipping undecodable cache entry {key}: {e}")
                    continue
                result.records.extend(records)
        except (RedisError, OSError) as e:
            logger.error(f"Failed to scan cache for {match}: {e}")
            raise StoreUnavailableError(f"Failed to scan cache for {match}: {e}") from e

        logger.debug(
            f"Cache scan {match}: {len(result.records)} records from {result.keys_scanned} keys "
            f"({result.skipped} skipped)"
        )
        return result
