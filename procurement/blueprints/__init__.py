"""
Office Procurement Platform
Blueprint registry.
"""

from procurement.utils.helpers import pagination_args


def paginate_query(query):
    """Apply page/limit pagination to a SQLAlchemy query.

    Query params:
        page  - 1-based page number (default 1)
        limit - page size (default 20, max 100)

    Returns:
        (items_list, pagination_dict)
    """
    page, limit = pagination_args()
    total = query.count()
    items = query.limit(limit).offset((page - 1) * limit).all()
    pages = (total + limit - 1) // limit if total else 0
    return items, {"page": page, "limit": limit, "total": total, "pages": pages}
