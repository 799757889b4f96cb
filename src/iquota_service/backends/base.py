# Copyright 2024 Heinrich Krupp
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Abstract base class for quota backends.

A backend is one vendor's quota API or report mechanism.  The resolver is
written against this interface only and never branches on which backend
it talks to.
"""

from abc import ABC, abstractmethod

from ..models.quota import QuotaRecord, QuotaResponse
from ..models.validators import PrincipalKind


class QuotaBackend(ABC):
    """
    Live source of quota records.

    Contract for implementations:
    - A missing quota is reported by raising ``NotFoundError`` (or a
      ``BackendError`` whose code is ``AEC_NOT_FOUND``), never by returning
      an empty response.
    - Any other failure, including authentication or validation errors
      and timeouts, is raised as ``BackendError`` with the backend's own
      code and message.
    - Records are returned already normalized to ``QuotaRecord``.
    """

    name: str = "backend"

    @abstractmethod
    async def fetch_quota(
        self,
        path: str,
        quota_type: str,
        principal: str | None = None,
    ) -> QuotaResponse:
        """
        Fetch the quotas for one ``(path, quota_type, principal)`` triple.

        Args:
            path: Absolute path the quota governs
            quota_type: One of directory, user, group, default-user, default-group
            principal: User or group name for user/group quotas

        Returns:
            Response whose ``resume`` is set when more pages exist
        """

    @abstractmethod
    async def list_quotas(self, path: str | None = None, quota_type: str | None = None) -> QuotaResponse:
        """First page of every quota, optionally filtered by path and type."""

    @abstractmethod
    async def fetch_resume(self, resume: str) -> QuotaResponse:
        """Next page of a listing, given the previous page's ``resume`` token."""

    async def fetch_user_quota(self, path: str, user: str) -> QuotaResponse:
        return await self.fetch_quota(path, PrincipalKind.USER.quota_type, user)

    async def fetch_group_quota(self, path: str, group: str) -> QuotaResponse:
        return await self.fetch_quota(path, PrincipalKind.GROUP.quota_type, group)

    async def fetch_principal_quota(self, path: str, kind: PrincipalKind, principal: str) -> QuotaResponse:
        return await self.fetch_quota(path, kind.quota_type, principal)

    async def fetch_over_quota(self, path: str | None = None) -> QuotaResponse:
        """
        Quotas whose usage has reached a limit.

        Backends with a native report should override this; the default
        walks the full listing and filters it.
        """
        over: list[QuotaRecord] = []
        page = await self.list_quotas(path)
        while True:
            over.extend(q for q in page.quotas if q.is_over_quota)
            if not page.has_more:
                break
            page = await self.fetch_resume(page.resume)
        return QuotaResponse(quotas=over)

    async def close(self) -> None:
        """Release any held connections. Safe to call multiple times."""
        return None
