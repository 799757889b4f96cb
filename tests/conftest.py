import asyncio
import os
import re
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

# Add src directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), "src"))

from iquota_service.backends.base import QuotaBackend  # noqa: E402
from iquota_service.cache.redis_cache import QuotaCache  # noqa: E402
from iquota_service.models.quota import QuotaRecord, QuotaResponse  # noqa: E402
from iquota_service.utils.errors import NotFoundError  # noqa: E402


class FakeClock:
    """Manually advanced clock for TTL expiry."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a Redis MATCH glob (with backslash escapes) to a regex."""
    out = []
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("^" + "".join(out) + "$", re.DOTALL)


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` honouring SETEX TTLs."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.data: dict[str, tuple[str, float | None]] = {}
        self.down = False
        self.setex_calls: list[tuple[str, int, str]] = []

    def _check(self) -> None:
        if self.down:
            raise RedisConnectionError("Connection refused")

    def _alive(self, key: str) -> bool:
        if key not in self.data:
            return False
        _, expires_at = self.data[key]
        if expires_at is not None and self.clock.now >= expires_at:
            del self.data[key]
            return False
        return True

    def put_raw(self, key: str, value: str | bytes | list, ttl: int | None = None) -> None:
        """Store a value as another client might: bytes, or a list for a non-string key."""
        expires_at = self.clock.now + ttl if ttl else None
        self.data[key] = (value, expires_at)

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str) -> str | None:
        self._check()
        if not self._alive(key):
            return None
        value = self.data[key][0]
        if isinstance(value, list):
            raise ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        if isinstance(value, bytes):
            # decode_responses=True
            return value.decode("utf-8")
        return value

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._check()
        self.setex_calls.append((key, ttl, value))
        self.data[key] = (value, self.clock.now + ttl)
        return True

    async def exists(self, *keys: str) -> int:
        self._check()
        return sum(1 for k in keys if self._alive(k))

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for k in keys:
            if self._alive(k):
                del self.data[k]
                removed += 1
        return removed

    async def scan_iter(self, match: str | None = None, count: int | None = None):
        self._check()
        regex = _glob_to_regex(match or "*")
        for key in list(self.data):
            if self._alive(key) and regex.match(key):
                yield key

    async def aclose(self) -> None:
        return None


class FakeBackend(QuotaBackend):
    """Call-counting backend serving canned responses."""

    name = "fake"

    def __init__(
        self,
        quotas: dict[tuple[str, str, str | None], QuotaResponse] | None = None,
        pages: list[QuotaResponse] | None = None,
        errors: dict[tuple[str, str, str | None], Exception] | None = None,
        delay: float = 0.0,
    ):
        self.quotas = quotas or {}
        self.pages = pages or [QuotaResponse()]
        self.errors = errors or {}
        self.delay = delay
        self.calls = 0
        self.list_calls: list[tuple[str | None, str | None]] = []
        self.resume_calls: list[str] = []
        self.closed = False

        self._next_page = {p.resume: self.pages[i + 1] for i, p in enumerate(self.pages[:-1]) if p.resume}

    async def fetch_quota(self, path, quota_type, principal=None):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        key = (path, quota_type, principal)
        if key in self.errors:
            raise self.errors[key]
        if key not in self.quotas:
            raise NotFoundError(f"{quota_type} not found")
        return self.quotas[key]

    async def list_quotas(self, path=None, quota_type=None):
        self.list_calls.append((path, quota_type))
        if quota_type in ("default-user", "default-group"):
            return QuotaResponse(quotas=[q for p in self.pages for q in p.quotas if q.quota_type == quota_type])
        return self.pages[0]

    async def fetch_resume(self, resume):
        self.resume_calls.append(resume)
        return self._next_page[resume]

    async def close(self):
        self.closed = True


def make_record(path: str = "/ifs/projects", quota_type: str = "directory", principal: str | None = None, **kwargs):
    """Build a QuotaRecord with sensible limits."""
    data = {
        "path": path,
        "quota_type": quota_type,
        "used_bytes": 1024,
        "used_inodes": 10,
        "soft_limit_bytes": 4096,
        "hard_limit_bytes": 8192,
    }
    if principal is not None:
        data["principal"] = {"name": principal, "type": quota_type}
    data.update(kwargs)
    return QuotaRecord(**data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest_asyncio.fixture
async def quota_cache(fake_redis):
    """Initialized QuotaCache talking to the in-memory Redis."""
    with patch("iquota_service.cache.redis_cache.ConnectionPool") as mock_pool_cls, patch(
        "iquota_service.cache.redis_cache.Redis", return_value=fake_redis
    ):
        mock_pool = MagicMock()
        mock_pool.aclose = AsyncMock()
        mock_pool_cls.from_url.return_value = mock_pool

        cache = QuotaCache(ttl_seconds=500, neg_ttl_seconds=86400, home_dir="/home")
        await cache.initialize()
        try:
            yield cache
        finally:
            await cache.close()


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def backend_factory():
    return FakeBackend
