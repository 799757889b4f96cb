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
Isilon OneFS SmartQuota backend.

Talks to the OneFS platform API over HTTPS, authenticating with a session
cookie (``isisessid``) opened on the first quota request and falling back to
basic auth when login fails.  OneFS quota objects are normalized into ``QuotaRecord``.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import ValidationError
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..config import OneFSSettings
from ..models.quota import QuotaRecord, QuotaResponse
from ..utils.errors import BackendError
from .base import QuotaBackend

logger = logging.getLogger(__name__)

RESOURCE_SESSION = "/session/1/session"
RESOURCE_QUOTAS = "/platform/1/quota/quotas"

SERVICE_PLATFORM = "platform"
SERVICE_NAMESPACE = "namespace"

_SESSION_PATTERN = re.compile(r"isisessid=([0-9a-zA-Z\-]+);")

_RETRYABLE_STATUS = frozenset({502, 503, 504})


class _RetryableStatus(Exception):
    """Transient gateway status worth another attempt."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"HTTP {response.status_code}")


def is_retryable_error(exception: BaseException) -> bool:
    """
    Determine if an exception is retryable.

    Transport failures (connect errors, timeouts) and gateway 5xx statuses
    are transient; API errors and other statuses are not.
    """
    return isinstance(exception, (httpx.TransportError, _RetryableStatus))


def _persona_name(kind: str, principal: str) -> str:
    return f"{kind.upper()}:{principal}"


def _epoch_to_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def normalize_quota(raw: dict[str, Any]) -> QuotaRecord:
    """
    Convert a OneFS quota object into a ``QuotaRecord``.

    OneFS thresholds are byte limits only, so inode limits stay 0.  The
    persona is only kept for user and group quotas.
    """
    thresholds = raw.get("thresholds") or {}
    usage = raw.get("usage") or {}
    quota_type = raw.get("type") or "directory"

    principal = None
    persona = raw.get("persona")
    if persona and quota_type in ("user", "group"):
        principal = {
            "id": persona.get("id") or None,
            "name": persona.get("name") or None,
            "type": persona.get("type") or quota_type,
        }

    soft_exceeded = bool(thresholds.get("soft_exceeded"))
    return QuotaRecord(
        path=raw.get("path") or "",
        quota_type=quota_type,
        principal=principal,
        used_bytes=usage.get("logical"),
        used_inodes=usage.get("inodes"),
        soft_limit_bytes=thresholds.get("soft"),
        hard_limit_bytes=thresholds.get("hard"),
        grace_period=thresholds.get("soft_grace"),
        soft_exceeded=soft_exceeded,
        soft_last_exceeded_at=_epoch_to_datetime(thresholds.get("soft_last_exceeded")) if soft_exceeded else None,
    )


class OneFSBackend(QuotaBackend):
    """OneFS REST client producing normalized quota responses."""

    name = "OneFS"

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8080,
        user: str = "",
        password: str = "",
        verify_tls: bool = False,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_wait_seconds: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize OneFS backend.

        Args:
            host: OneFS cluster host name
            port: Platform API port
            user: API user
            password: API password
            verify_tls: Verify the cluster's TLS certificate
            timeout_seconds: Per-request timeout; expiry is a backend error
            max_retries: Attempts for transient failures
            retry_wait_seconds: Base of the exponential backoff between attempts
            transport: Custom httpx transport (used by tests)
        """
        self.host = host or "localhost"
        self.port = port or 8080
        self.user = user
        self.max_retries = max_retries
        self.retry_wait_seconds = retry_wait_seconds
        self._password = password
        self._session: str | None = None
        self._login_attempted = False

        self._client = httpx.AsyncClient(
            base_url=self.url(""),
            verify=verify_tls,
            timeout=timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_settings(cls, onefs_settings: OneFSSettings, **kwargs: Any) -> "OneFSBackend":
        return cls(
            host=onefs_settings.host,
            port=onefs_settings.port,
            user=onefs_settings.user,
            password=onefs_settings.password.get_secret_value(),
            verify_tls=onefs_settings.verify_tls,
            timeout_seconds=onefs_settings.timeout_seconds,
            max_retries=onefs_settings.max_retries,
            **kwargs,
        )

    def url(self, resource: str) -> str:
        """Return URL for OneFS api given a resource."""
        return f"https://{self.host}:{self.port}{resource}"

    @property
    def session(self) -> str | None:
        return self._session

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------

    async def new_session(self) -> str:
        """
        Authenticate and create a session reused by later requests.

        Raises:
            BackendError: Login was rejected or the cookie was unusable
        """
        payload = {
            "username": self.user,
            "password": self._password,
            "services": [SERVICE_PLATFORM, SERVICE_NAMESPACE],
        }

        response = await self._send("POST", RESOURCE_SESSION, json=payload)
        if response.status_code != 201:
            raise BackendError(
                "AEC_UNAUTHORIZED",
                f"OneFS login failed with HTTP status code: {response.status_code}",
                backend=self.name,
            )

        cookie = response.headers.get("set-cookie", "")
        if not cookie:
            raise BackendError("AEC_UNAUTHORIZED", "OneFS login failed empty set-cookie header", backend=self.name)

        match = _SESSION_PATTERN.search(cookie)
        if not match:
            raise BackendError("AEC_UNAUTHORIZED", "OneFS login failed invalid set-cookie header", backend=self.name)

        self._session = match.group(1)
        logger.info(f"OneFS session created on {self.host}")
        return self._session

    async def _ensure_session(self) -> None:
        """
        Log in once before the first quota request.

        A failed login is logged and requests fall back to basic auth; it is
        not retried until a session has been obtained and later expires.
        """
        if self._session or self._login_attempted or not (self.user and self._password):
            return

        self._login_attempted = True
        try:
            await self.new_session()
        except BackendError as e:
            logger.warning(f"OneFS session login on {self.host} failed, using basic auth: {e}")

    def _auth_kwargs(self) -> dict[str, Any]:
        if self._session:
            return {"headers": {"Cookie": f"isisessid={self._session}"}}
        if self.user and self._password:
            return {"auth": (self.user, self._password)}
        return {}

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(self, method: str, resource: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying transient failures with backoff."""
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(is_retryable_error),
                stop=stop_after_attempt(self.max_retries),
                wait=wait_exponential(multiplier=self.retry_wait_seconds, max=5),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.request(method, resource, **kwargs)
                    if response.status_code in _RETRYABLE_STATUS:
                        raise _RetryableStatus(response)
        except _RetryableStatus as e:
            raise BackendError(
                "AEC_UNAVAILABLE",
                f"OneFS request failed with HTTP status code: {e.response.status_code}",
                backend=self.name,
            ) from e
        except httpx.TransportError as e:
            logger.error(f"OneFS request to {resource} failed: {e}")
            raise BackendError("AEC_UNAVAILABLE", f"OneFS request failed: {e}", backend=self.name) from e

        return response

    async def _get_quotas(self, params: dict[str, str]) -> QuotaResponse:
        await self._ensure_session()
        response = await self._send("GET", RESOURCE_QUOTAS, params=params, **self._auth_kwargs())

        if response.status_code == 401 and self._session:
            logger.info(f"OneFS session on {self.host} expired, logging in again")
            self._session = None
            self._login_attempted = False
            self._client.cookies.clear()
            await self._ensure_session()
            response = await self._send("GET", RESOURCE_QUOTAS, params=params, **self._auth_kwargs())

        if response.status_code == 500:
            raise BackendError(
                "AEC_SYSTEM_INTERNAL_ERROR",
                f"Failed to fetch quota with HTTP status code: {response.status_code}",
                backend=self.name,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise BackendError(
                "AEC_INVALID_RESPONSE",
                f"OneFS returned a non JSON body (HTTP {response.status_code})",
                backend=self.name,
            ) from e

        errors = body.get("errors")
        if errors:
            # Only the first error is surfaced
            raise BackendError.from_payload(errors[0], backend=self.name)

        if response.status_code >= 400:
            raise BackendError(
                "AEC_BAD_REQUEST",
                f"OneFS request failed with HTTP status code: {response.status_code}",
                backend=self.name,
            )

        try:
            quotas = [normalize_quota(q) for q in body.get("quotas") or []]
        except ValidationError as e:
            raise BackendError("AEC_INVALID_RESPONSE", f"Unexpected OneFS quota object: {e}", backend=self.name) from e

        return QuotaResponse(quotas=quotas, resume=body.get("resume") or None)

    # ------------------------------------------------------------------
    # QuotaBackend
    # ------------------------------------------------------------------

    async def fetch_quota(self, path: str, quota_type: str, principal: str | None = None) -> QuotaResponse:
        params = {"path": path, "type": quota_type}
        if principal:
            params["persona"] = _persona_name(quota_type, principal)
            params["resolve_names"] = "true"
        return await self._get_quotas(params)

    async def list_quotas(self, path: str | None = None, quota_type: str | None = None) -> QuotaResponse:
        params = {"resolve_names": "true"}
        if path:
            params["path"] = path
            params["recurse_path_children"] = "true"
        if quota_type:
            params["type"] = quota_type
        return await self._get_quotas(params)

    async def fetch_resume(self, resume: str) -> QuotaResponse:
        return await self._get_quotas({"resume": resume})

    async def fetch_over_quota(self, path: str | None = None) -> QuotaResponse:
        params = {"exceeded": "true", "resolve_names": "true"}
        if path:
            params["path"] = path
            params["recurse_path_children"] = "true"

        page = await self._get_quotas(params)
        result = page
        while page.has_more:
            page = await self.fetch_resume(page.resume)
            result = result.merged(page)
        return result.model_copy(update={"resume": None})
