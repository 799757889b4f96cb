"""Normalization of directory quota reports from cache-only backends.

PanFS and VAST have no live per-principal API; their quota reports are
pushed into the cache by refreshers.  Both report a flat directory shape:

    {"path": "/panasas/proj", "hard_limit": ..., "soft_limit": ...,
     "used": ..., "hard_limit_inodes": ..., "soft_limit_inodes": ...,
     "used_inodes": ..., "pretty_grace_period": "7 days"}

VAST reports usage as ``used_effective_capacity`` instead of ``used``.
"""

from typing import Any

from ..models.quota import QuotaRecord


def directory_record(report: dict[str, Any], path: str | None = None) -> QuotaRecord:
    """
    Build a directory ``QuotaRecord`` from a report row.

    Args:
        report: One row of a PanFS or VAST quota report
        path: Override for the governed path (e.g. mount prefix + volume name)
    """
    used = report.get("used")
    if used is None:
        used = report.get("used_effective_capacity")

    return QuotaRecord(
        path=path or report.get("path") or "",
        quota_type="directory",
        used_bytes=used,
        used_inodes=report.get("used_inodes"),
        soft_limit_bytes=report.get("soft_limit"),
        hard_limit_bytes=report.get("hard_limit"),
        soft_limit_inodes=report.get("soft_limit_inodes"),
        hard_limit_inodes=report.get("hard_limit_inodes"),
        grace_period=report.get("pretty_grace_period") or report.get("grace_period"),
    )
