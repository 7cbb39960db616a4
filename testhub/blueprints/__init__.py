"""
testhub
Blueprint registry and shared request helpers.
"""

from flask import request

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (ValueError, TypeError):
        return default


def paginate_query(query, default_limit=DEFAULT_PAGE_LIMIT, max_limit=MAX_PAGE_LIMIT):
    """Apply page/limit pagination to a SQLAlchemy query.

    Query params:
        page   — 1-based page number (default 1)
        limit  — items per page (default 10, capped at max_limit)

    Returns:
        (items_list, total_count, page, limit)
    """
    total = query.count()
    limit = min(max(_int_arg("limit", default_limit), 1), max_limit)
    page = max(_int_arg("page", 1), 1)
    items = query.limit(limit).offset((page - 1) * limit).all()
    return items, total, page, limit


def json_body() -> dict:
    """Request JSON as a dict; anything else becomes an empty payload."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
