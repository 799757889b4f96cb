"""Pagination helper for backend listings."""

import logging

from ..backends.base import QuotaBackend
from ..models.quota import QuotaResponse

logger = logging.getLogger(__name__)


async def collect_pages(
    backend: QuotaBackend,
    path: str | None = None,
    quota_type: str | None = None,
) -> QuotaResponse:
    """
    Follow resume tokens until the backend reports no further page.

    Records are concatenated in page order.  Errors from any page propagate;
    a partial listing is never returned.
    """
    page = await backend.list_quotas(path, quota_type)
    result = page
    pages = 1
    while page.has_more:
        page = await backend.fetch_resume(page.resume)
        result = result.merged(page)
        pages += 1

    logger.debug(f"Collected {len(result.quotas)} quotas in {pages} pages from {backend.name}")
    return result.model_copy(update={"resume": None})
