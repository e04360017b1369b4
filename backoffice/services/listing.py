"""
DataTables-style listing: search, sort and offset pagination in SQL.

Sorting on related entities (POI name, vehicle type name...) is done with
joins in the base query, so a page never loads more than ``length`` rows.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

MAX_PAGE_LENGTH = 100
DEFAULT_PAGE_LENGTH = 25


@dataclass
class ListParams:
    draw: int = 1
    start: int = 0
    length: int = DEFAULT_PAGE_LENGTH
    search: Optional[str] = None
    sort: Optional[str] = None
    sort_dir: str = "asc"
    filters: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.start = max(int(self.start or 0), 0)
        length = int(self.length or DEFAULT_PAGE_LENGTH)
        self.length = min(length if length > 0 else DEFAULT_PAGE_LENGTH, MAX_PAGE_LENGTH)
        self.search = (self.search or "").strip() or None
        self.sort_dir = "desc" if str(self.sort_dir).lower() == "desc" else "asc"


@dataclass
class ListPage:
    draw: int
    records_total: int
    records_filtered: int
    rows: list


def contains(column, term: str):
    """Case-insensitive substring match with LIKE wildcards escaped."""
    return func.lower(column).contains(term.lower(), autoescape=True)


def resolve_sort(
    params: ListParams,
    columns: dict[str, Any],
    column_order: Sequence[str],
    default: str,
):
    """
    Map the requested sort key to a column expression. DataTables sends a
    column index (optionally with the column's ``data`` name), other clients
    send the name directly.
    """
    key = params.sort
    if key is not None and key.isdigit():
        index = int(key)
        key = column_order[index] if index < len(column_order) else None
    if key not in columns:
        key = default
    expression = columns[key]
    return expression.desc() if params.sort_dir == "desc" else expression.asc()


async def count_rows(db: AsyncSession, stmt: Select) -> int:
    result = await db.execute(select(func.count()).select_from(stmt.order_by(None).subquery()))
    return result.scalar_one()


async def paginate(
    db: AsyncSession,
    stmt: Select,
    params: ListParams,
    *,
    search_columns: Sequence[Any] = (),
    order_by: Sequence[Any] = (),
    options: Sequence[Any] = (),
) -> ListPage:
    records_total = await count_rows(db, stmt)

    filtered = stmt
    if params.search and search_columns:
        filtered = stmt.where(or_(*(contains(col, params.search) for col in search_columns)))
        records_filtered = await count_rows(db, filtered)
    else:
        records_filtered = records_total

    page_stmt = filtered.order_by(*order_by).offset(params.start).limit(params.length)
    if options:
        page_stmt = page_stmt.options(*options)
    result = await db.execute(page_stmt)

    return ListPage(
        draw=params.draw,
        records_total=records_total,
        records_filtered=records_filtered,
        rows=list(result.scalars().unique().all()),
    )
