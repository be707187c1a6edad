"""Conversions between page, percentage and reading status.

Page plus page count is the authoritative representation of progress; the
percentage and the status are derived from it by these functions.
"""

from __future__ import annotations

from typing import Optional

from bookmate.library.models import ReadingStatus


def clamp_page(page: int, page_count: Optional[int]) -> int:
    page = max(0, page)
    if page_count is not None:
        page = min(page, max(0, page_count))
    return page


def page_from_percentage(percentage: float, page_count: int) -> int:
    if page_count <= 0:
        return 0
    page = round(percentage / 100.0 * page_count)
    return clamp_page(page, page_count)


def percentage_from_page(page: int, page_count: int) -> float:
    if page_count <= 0:
        return 0.0
    return min(100.0, max(0.0, 100.0 * page / page_count))


def derive_status(page: int, page_count: Optional[int]) -> ReadingStatus:
    if page <= 0:
        return ReadingStatus.NOT_STARTED
    if page_count is not None and page_count > 0 and page >= page_count:
        return ReadingStatus.FINISHED
    return ReadingStatus.IN_PROGRESS
