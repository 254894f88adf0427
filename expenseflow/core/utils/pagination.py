"""Page/limit helpers shared by list endpoints."""
import math

MAX_PAGE_SIZE = 100


def normalize_page(page, limit, default_limit=10):
    """Coerce page/limit query values to sane ints. Returns (page, limit, offset)."""
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = default_limit
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    return page, limit, (page - 1) * limit


def build_pagination(page, limit, total):
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': math.ceil(total / limit) if limit else 0,
    }
