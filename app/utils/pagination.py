import math
from typing import Any, Dict, Literal

from fastapi import Query
from sqlalchemy import Select, asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

SORTABLE_FIELDS = ("created_at", "updated_at")


class PageParams:
    """
    Query parameters shared by every paginated listing.

    Use as ``params: PageParams = Depends()``.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        sort: Literal["created_at", "updated_at"] = Query("created_at"),
        order: Literal["asc", "desc"] = Query("desc"),
    ):
        self.page = page
        self.limit = limit
        self.sort = sort
        self.order = order


def apply_sort(query: Select, model, sort: str = "created_at", order: str = "desc") -> Select:
    """Order ``query`` by one of the whitelisted timestamp columns"""
    if sort not in SORTABLE_FIELDS:
        sort = "created_at"
    column = getattr(model, sort)
    return query.order_by(asc(column) if order == "asc" else desc(column))


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    """
    Run ``query`` for one page and count the full result set.

    Returns:
        Dict with items, total, page, limit and total_pages
    """
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = await db.scalar(count_query) or 0

    result = await db.execute(query.limit(limit).offset((page - 1) * limit))
    items = result.scalars().all()

    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }
