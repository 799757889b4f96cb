"""Default user/group quota table.

Default quotas are fetched once and held in memory keyed by path.  The
table is immutable; refreshing means building a new one (``load``) and
handing it to the service (``QuotaService.reload_defaults``).
"""

import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from ..backends.base import QuotaBackend
from ..models.quota import QuotaRecord
from .listing import collect_pages

logger = logging.getLogger(__name__)


class DefaultQuotaTable:
    """Read-only lookup of default-user and default-group quotas by path."""

    def __init__(
        self,
        user_defaults: Mapping[str, QuotaRecord] | None = None,
        group_defaults: Mapping[str, QuotaRecord] | None = None,
    ):
        self._user = MappingProxyType(dict(user_defaults or {}))
        self._group = MappingProxyType(dict(group_defaults or {}))

    @classmethod
    def from_records(cls, records: Iterable[QuotaRecord]) -> "DefaultQuotaTable":
        """Index default records by path; non-default records are ignored."""
        user: dict[str, QuotaRecord] = {}
        group: dict[str, QuotaRecord] = {}
        for record in records:
            if record.quota_type == "default-user":
                user[record.path] = record
            elif record.quota_type == "default-group":
                group[record.path] = record
        return cls(user, group)

    @classmethod
    async def load(cls, backend: QuotaBackend) -> "DefaultQuotaTable":
        """Fetch every default quota the backend knows about."""
        user = await collect_pages(backend, quota_type="default-user")
        group = await collect_pages(backend, quota_type="default-group")
        table = cls.from_records([*user.quotas, *group.quotas])
        logger.info(f"Loaded {len(table._user)} default user and {len(table._group)} default group quotas")
        return table

    @property
    def user_defaults(self) -> Mapping[str, QuotaRecord]:
        return self._user

    @property
    def group_defaults(self) -> Mapping[str, QuotaRecord]:
        return self._group

    def user(self, path: str) -> QuotaRecord | None:
        return self._user.get(path)

    def group(self, path: str) -> QuotaRecord | None:
        return self._group.get(path)

    def records(self) -> list[QuotaRecord]:
        """Every default-user record, then every default-group record."""
        return [*self._user.values(), *self._group.values()]

    def __len__(self) -> int:
        return len(self._user) + len(self._group)
