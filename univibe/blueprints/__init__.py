"""
UniVibe Campus Platform
Blueprint registry and shared request helpers.
"""

from datetime import date, datetime

from flask import request

from univibe.core.exceptions import ValidationError


def paginate_query(query, default_limit=50, max_limit=500):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 50, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def parse_datetime(value, field):
    """ISO-8601 string → datetime (None passes through)."""
    if value in (None, ""):
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be an ISO-8601 datetime",
                              details={field: value}) from e


def parse_date(value, field):
    """ISO-8601 ``YYYY-MM-DD`` string → date."""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be a YYYY-MM-DD date",
                              details={field: value}) from e


def optional_int(data, field):
    value = data.get(field)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", details={field: value})
    return value
