import math
from typing import TypedDict

MAX_LIMIT = 100
DEFAULT_LIMIT = 10


class Window(TypedDict):
    skip: int
    take: int
    page: int
    limit: int


def get_pagination(page: int | None = None, limit: int | None = None) -> Window:
    """Clamp *page* to >= 1 and *limit* to [1, 100] and derive the row offset."""
    page = max(1, page or 1)
    limit = min(MAX_LIMIT, max(1, DEFAULT_LIMIT if limit is None else limit))
    return {"skip": (page - 1) * limit, "take": limit, "page": page, "limit": limit}


def get_pagination_meta(page: int, limit: int, total: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }
