# Overview: Page/limit pagination shared by the list endpoints.

from __future__ import annotations

import math
from typing import Callable

MAX_LIMIT = 500


def clamp(page: int | None, limit: int | None, *, default_limit: int = 50) -> tuple[int, int]:
    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else default_limit
    return page, min(limit, MAX_LIMIT)


def page_payload(rows: list, total: int, page: int, limit: int) -> dict:
    return {
        "data": rows,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


def paginate(query, page: int | None, limit: int | None, serialize: Callable | None = None) -> dict:
    """Count, then fetch one page of an ordered query."""
    page, limit = clamp(page, limit)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    rows = [serialize(item) for item in items] if serialize else items
    return page_payload(rows, total, page, limit)
