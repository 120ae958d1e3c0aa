"""Pagination window computation and offset/limit pagination of queries."""

from typing import Any, List, Optional, Tuple

from sqlalchemy import Select, func
from sqlmodel import Session, select
from sqlmodel.ext.asyncio.session import AsyncSession

from fastapi_listview.models import PageWindow, QueryParameters

DEFAULT_INNER_OFFSET = 4
DEFAULT_OUTER_OFFSET = 1


def compute_window(
    page: int,
    total_pages: int,
    inner_offset: int = DEFAULT_INNER_OFFSET,
    outer_offset: int = DEFAULT_OUTER_OFFSET,
) -> PageWindow:
    """
    Choose which page numbers a pager should show.

    The window holds a centre range of ``2 * inner_offset + 1`` pages around the
    current page, shifted towards the valid side near either end, plus
    ``outer_offset + 1`` anchor pages at the start and at the end. A single
    ellipsis marks the gap after the leading anchors and another the gap before
    the trailing anchors.

    Args:
        page: Current page (not required to be in range)
        total_pages: Number of pages
        inner_offset: Pages shown on each side of the current page
        outer_offset: Extra pages always shown after page 1 and before the last page

    Returns:
        PageWindow: Visible pages, ellipsis flags and prev/next flags.
            Empty when there is at most one page.

    Raises:
        ValueError: If an offset is negative
    """
    if inner_offset < 0 or outer_offset < 0:
        raise ValueError("inner_offset and outer_offset must be >= 0")
    if total_pages <= 1:
        return PageWindow()

    low, high = page - inner_offset, page + inner_offset
    if high > total_pages:
        low -= high - total_pages
    elif low < 1:
        high += 1 - low
    low, high = max(low, 1), min(high, total_pages)

    visible = set(range(low, high + 1))
    visible.update(range(1, min(1 + outer_offset, total_pages) + 1))
    visible.update(range(max(total_pages - outer_offset, 1), total_pages + 1))
    pages = sorted(visible)

    gap_after_lead = outer_offset + 2
    gap_before_tail = total_pages - outer_offset - 1
    ellipsis_before = 1 <= gap_after_lead <= total_pages and gap_after_lead not in visible
    ellipsis_after = (
        1 <= gap_before_tail <= total_pages
        and gap_before_tail not in visible
        and gap_before_tail != gap_after_lead
    )

    entries: List[Optional[int]] = []
    previous = None
    for n in pages:
        if previous is not None and n > previous + 1:
            if ellipsis_before and previous < gap_after_lead < n:
                entries.append(None)
            if ellipsis_after and previous < gap_before_tail < n:
                entries.append(None)
        entries.append(n)
        previous = n

    return PageWindow(
        visible_pages=pages,
        entries=entries,
        ellipsis_before=ellipsis_before,
        ellipsis_after=ellipsis_after,
        prev_disabled=page <= 1,
        next_disabled=page >= total_pages,
    )


class PaginationEngine:
    """
    Engine for paginating and counting queries.

    Consumes the offset/limit pair of :class:`QueryParameters`; when both are
    None (unpaginated mode) the full result set is returned.
    """

    def __init__(self, params: QueryParameters):
        """
        Initialize PaginationEngine.

        Args:
            params: Query parameters produced by a list view state
        """
        self.params = params

    def apply_limits(self, query: Select) -> Select:
        if self.params.offset is not None:
            query = query.offset(self.params.offset)
        if self.params.limit is not None:
            query = query.limit(self.params.limit)
        return query

    @staticmethod
    def _count_query(query: Select) -> Select:
        # ORDER BY is irrelevant to the count and may reference text fragments
        return select(func.count()).select_from(query.order_by(None).subquery())

    # --- Sync methods ---

    def paginate(self, query: Select, session: Session) -> Any:
        """
        Execute the query for the current page.

        Args:
            query: SQLAlchemy Select query (filters and sort already applied)
            session: Database session

        Returns:
            Any: Query results
        """
        return session.exec(self.apply_limits(query)).all()

    def count_total(self, query: Select, session: Session) -> int:
        """
        Count total items matching the query.

        Args:
            query: SQLAlchemy Select query with filters applied
            session: Database session

        Returns:
            int: Total count of items
        """
        return session.exec(self._count_query(query)).one()

    def paginate_with_count(self, query: Select, session: Session) -> Tuple[Any, int]:
        """Return ``(page_data, total_count)``."""
        total = self.count_total(query, session)
        data = self.paginate(query, session)
        return data, total

    # --- Async methods ---

    async def paginate_async(self, query: Select, session: AsyncSession) -> Any:
        result = await session.exec(self.apply_limits(query))
        return result.all()

    async def count_total_async(self, query: Select, session: AsyncSession) -> int:
        result = await session.exec(self._count_query(query))
        return result.one()

    async def paginate_with_count_async(
        self, query: Select, session: AsyncSession
    ) -> Tuple[Any, int]:
        """Async version of paginate_with_count."""
        total = await self.count_total_async(query, session)
        data = await self.paginate_async(query, session)
        return data, total
