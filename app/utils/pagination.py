"""Pagination utilities"""

from math import ceil


def pagination_meta(page: int, limit: int, total: int) -> dict:
    """
    Build pagination metadata for a page of results

    Args:
        page: Current page number (1-indexed)
        limit: Number of items per page
        total: Total number of matching items

    Returns:
        Dictionary with pagination data
    """
    pages = ceil(total / limit) if total > 0 else 1

    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": pages,
        "has_next": page < pages,
        "has_prev": page > 1,
    }


def page_to_skip(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit
