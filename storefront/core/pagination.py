"""Pagination helpers."""

import math

MAX_PAGE_SIZE = 100


def paginate(page: int, limit: int, max_limit: int = MAX_PAGE_SIZE) -> tuple[int, int, int]:
    """Clamp page/limit; return (page, limit, skip)."""
    page = max(1, page)
    limit = max(1, min(limit, max_limit))
    return page, limit, (page - 1) * limit


def page_meta(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }
