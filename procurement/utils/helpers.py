"""Shared request-parsing helpers used by services and blueprints.

as_int:          tolerant int coercion for ids coming from JSON or query args
require_int:     strict variant that raises ValidationError
parse_datetime:  ISO-8601 parsing, raises ValidationError on bad input
pagination_args: page/limit query parsing with bounds
"""
from datetime import date, datetime

from flask import request

from procurement.core.exceptions import ValidationError

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def as_int(value):
    """Return ``int(value)`` or None for empty/invalid input."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def require_int(value, field: str) -> int:
    """Coerce *value* to int or raise ValidationError naming *field*."""
    result = as_int(value)
    if result is None:
        raise ValidationError(f"{field} is required", details={field: "must be an integer id"})
    return result


def parse_datetime(value, field: str):
    """Parse an ISO-8601 date or datetime string; None passes through."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 date", details={field: str(value)})


def pagination_args() -> tuple[int, int]:
    """Read ``page`` and ``limit`` from the query string (1-based, limit 1..100)."""
    page = request.args.get("page", 1, type=int) or 1
    limit = request.args.get("limit", DEFAULT_PAGE_SIZE, type=int) or DEFAULT_PAGE_SIZE
    if page < 1:
        raise ValidationError("page must be >= 1", details={"page": page})
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(
            f"limit must be between 1 and {MAX_PAGE_SIZE}", details={"limit": limit}
        )
    return page, limit
