import math

from flask import current_app
from sqlalchemy import or_


def apply_pagination_and_search(query, model, search_term=None, search_columns=(), page=1, limit=None):
    """
    Applies search filtering and pagination to a SQLAlchemy query.

    Args:
      query: base SQLAlchemy query, already scoped to a school
      model: SQLAlchemy model class
      search_term: string to search for
      search_columns: column names (strings) to search within model
      page: int, 1-based page number
      limit: int, page size; falls back to DEFAULT_PAGE_SIZE

    Returns:
      (items, meta) where meta is {page, limit, total, totalPages}
    """
    if search_term:
        search_filters = [
            getattr(model, col).ilike(f"%{search_term}%") for col in search_columns
        ]
        query = query.filter(or_(*search_filters))

    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else current_app.config.get("DEFAULT_PAGE_SIZE", 10)

    paginated = query.paginate(page=page, per_page=limit, error_out=False)

    return paginated.items, {
        "page": page,
        "limit": limit,
        "total": paginated.total,
        "totalPages": math.ceil(paginated.total / limit),
    }
