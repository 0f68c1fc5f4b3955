"""
Field Activity Call Sampling Service
Blueprint registry.
"""

import math


def paginate_query(query, page=1, limit=20):
    """Apply page/limit pagination to a SQLAlchemy query.

    Returns:
        (items_list, pagination) where pagination is
        ``{"page", "limit", "total", "pages"}``.
    """
    total = query.order_by(None).count()
    items = query.limit(limit).offset((page - 1) * limit).all()
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }
    return items, pagination
