def paginate(qs, page: int = 1, limit: int = 20):
    """Slice ``qs`` for a 1-based page; returns ``(items, total)``."""
    total = qs.count()
    start = (page - 1) * limit
    return list(qs[start:start + limit]), total


def pagination_meta(total: int, page: int, limit: int) -> dict:
    pages = (total + limit - 1) // limit if limit else 0
    return {'total': total, 'page': page, 'limit': limit, 'pages': pages}
