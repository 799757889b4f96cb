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
Service factory for the iquota service.

Creates the cache, backend, and default quota table and wires them into a
``QuotaService``.
"""

import logging

from .backends.base import QuotaBackend
from .backends.onefs import OneFSBackend
from .cache.redis_cache import QuotaCache
from .config import Settings
from .services.access import AccessPolicy
from .services.defaults import DefaultQuotaTable
from .services.quota_service import QuotaService

logger = logging.getLogger(__name__)


async def create_quota_service(
    settings: Settings | None = None,
    backend: QuotaBackend | None = None,
    load_defaults: bool = True,
) -> QuotaService:
    """
    Create and initialize a quota service.

    Args:
        settings: Settings to use; the module-level settings when omitted
        backend: Backend to use; a OneFS backend built from settings when omitted
        load_defaults: Fetch the default quota table from the backend

    Returns:
        Initialized QuotaService
    """
    if settings is None:
        from .config import settings as default_settings

        settings = default_settings

    if backend is None:
        backend = OneFSBackend.from_settings(settings.onefs)
        logger.info(f"Using OneFS backend at {backend.host}:{backend.port}")

    cache = None
    if settings.cache.enable_cache:
        cache = QuotaCache.from_settings(settings.cache)
        await cache.initialize()
    else:
        logger.info("Quota cache disabled (enable_cache=False)")

    try:
        defaults = await DefaultQuotaTable.load(backend) if load_defaults else DefaultQuotaTable()
    except Exception:
        if cache is not None:
            await cache.close()
        raise

    return QuotaService(
        backend=backend,
        cache=cache,
        settings=settings.cache,
        defaults=defaults,
        policy=AccessPolicy(settings.access.admins),
    )
