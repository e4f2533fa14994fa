"""
Query helpers shared by service-layer listings.

Usage:
    from core.helpers import paginate

    rows, pagination = paginate(Withdrawal.objects.order_by("-created_at"), page=2, page_size=10)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from django.db.models import QuerySet


def paginate(queryset: QuerySet, page: int, page_size: int) -> tuple[list, dict]:
    """
    Slice one page out of an ordered queryset.

    A page past the end is clamped to the last page, so callers always
    get the final rows rather than an empty list.

    Returns:
        (rows, pagination) where pagination holds page, page_size, total,
        total_pages, has_next and has_previous.
    """
    total = queryset.count()
    total_pages = -(-total // page_size)
    page = min(max(page, 1), max(total_pages, 1))

    offset = (page - 1) * page_size
    rows = list(queryset[offset : offset + page_size])

    return rows, {
        "page": page,
        "page_size": page_size,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_previous": page > 1,
    }
