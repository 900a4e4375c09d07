"""
Photo search: local substring filter first, remote search as fallback.
"""

import logging
import math

from timehut.models import PageResult, PhotoRecord, PhotoSource

logger = logging.getLogger(__name__)


def filter_photos_locally(photos: list[PhotoRecord], query: str) -> list[PhotoRecord]:
    """Case-insensitive substring match on title, description or tags."""
    if not query:
        return list(photos)
    needle = query.lower()
    return [
        p
        for p in photos
        if needle in p.title.lower()
        or needle in p.description.lower()
        or needle in p.raw_tags.lower()
    ]


def paginate(photos: list[PhotoRecord], page: int = 1, per_page: int = 50) -> PageResult:
    """Slice an in-memory list into the same shape as a remote page."""
    page = max(page, 1)
    total = len(photos)
    start = (page - 1) * per_page
    return PageResult(
        photos=photos[start : start + per_page],
        total=total,
        pages=math.ceil(total / per_page) if per_page else 0,
        page=page,
    )


def search_photos(
    query: str,
    source: PhotoSource,
    local: list[PhotoRecord] | None = None,
    page: int = 1,
    per_page: int = 50,
) -> PageResult:
    """
    Search photos by free text.

    Photos already held locally are filtered first; only when that yields
    nothing is the remote source asked.

    Args:
        query: Free-text query
        source: Remote photo source used for the fallback search
        local: Photos already loaded for the current profile
        page: 1-based page number
        per_page: Page size

    Returns:
        PageResult, local or remote
    """
    query = query.strip()
    if local:
        matches = filter_photos_locally(local, query)
        if matches:
            logger.debug(f"Search '{query}': {len(matches)} local matches")
            return paginate(matches, page, per_page)

    logger.debug(f"Search '{query}': no local matches, querying remote")
    return source.search_photos(query, page=page, per_page=per_page)
