# Overview: Page/limit parsing and paginated query helpers shared by list endpoints.

from __future__ import annotations

import math

from flask import current_app

from gympos.validation import ValidationError


def parse_page_args(args) -> tuple[int, int]:
    """Read page/limit from request args, clamped to the configured bounds."""
    default_limit = current_app.config.get("DEFAULT_PAGE_SIZE", 10)
    max_limit = current_app.config.get("MAX_PAGE_SIZE", 100)

    page = args.get("page", default=1, type=int) or 1
    limit = args.get("limit", default=default_limit, type=int) or default_limit
    return max(1, page), max(1, min(limit, max_limit))


def apply_sort(query, model, sort_by: str | None, sort_order: str | None, allowed: set[str], default: str):
    sort_by = sort_by or default
    if sort_by not in allowed:
        raise ValidationError(f"sort_by must be one of {', '.join(sorted(allowed))}")
    sort_order = (sort_order or "desc").lower()
    if sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be asc or desc")
    column = getattr(model, sort_by)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    return query.order_by(ordering, model.id.desc() if sort_order == "desc" else model.id.asc())


def paginate(query, page: int, limit: int) -> dict:
    """
    Run a paginated query.

    Returns {"data": [rows...], "meta": {total, page, limit, total_pages}};
    callers serialize the rows.
    """
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "data": rows,
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0,
        },
    }
