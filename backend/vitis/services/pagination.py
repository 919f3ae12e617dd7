# Overview: Shared list pagination for service queries.

from __future__ import annotations

from typing import Callable


def paginate(query, page: int | None, per_page: int | None, serialize: Callable) -> dict:
    """
    Run `query` and return {"items", "count"} plus "pagination" when page is given.

    - page: 1-indexed. If None, returns all items.
    - per_page: default 20, max 100
    """
    if page is None:
        rows = query.all()
        return {
            "items": [serialize(r) for r in rows],
            "count": len(rows),
        }

    per_page = min(per_page or 20, 100)  # Default 20, max 100
    per_page = max(per_page, 1)
    page = max(page, 1)  # Ensure page >= 1

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
