"""List view state: sort, filter and page of a tabular display."""

import copy
import logging
from math import ceil
from typing import Any, Dict, Mapping, Optional, Sequence

from fastapi_listview.config import ListViewConfig
from fastapi_listview.filters import FilterSelector, Predicate
from fastapi_listview.models import PageWindow, QueryParameters
from fastapi_listview.pagination import (
    DEFAULT_INNER_OFFSET,
    DEFAULT_OUTER_OFFSET,
    compute_window,
)
from fastapi_listview.sorting import (
    MAX_COLUMNS,
    TOKEN_SEPARATOR,
    MalformedSortToken,
    SortList,
    SortSpec,
)

logger = logging.getLogger(__name__)

# Keys of the serialized state
FILTER_KEY = "filter"
SORTS_KEY = "sorts"
PAGE_KEY = "page"
PAGE_SIZE_KEY = "pageSize"

STATE_KEYS = (FILTER_KEY, SORTS_KEY, PAGE_KEY, PAGE_SIZE_KEY)

_ALIASES = {"page_size": PAGE_SIZE_KEY}


def _parse_int(key: str, raw: Any, minimum: int, strict: bool) -> Optional[int]:
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        value = None
    if value is None or value < minimum:
        if strict:
            raise ValueError(f"Invalid value '{raw}' for '{key}'. Expected an integer >= {minimum}.")
        logger.warning("Ignoring invalid value %r for list view parameter %r", raw, key)
        return None
    return value


class ListViewState:
    """
    Transient view state of a list: active filter, sort columns and page.

    A state is built per request from a serialized prior state and the
    request's parameters (see :meth:`deserialize`), mutated by the
    ``change_*`` operations and serialized again for the next request. It also
    yields the parameters a data layer needs (:meth:`to_query_parameters`).
    The row count is fed back by the caller once the query has run.

    Mutators return ``self`` so they chain; use :meth:`copy` to work on a
    what-if state, e.g. the target of a link, without touching this one.

    Example:
        state = ListViewState("heroes", filters=["age >= 18", None], sorts="name")
        state.deserialize(request.query_params)
        next_state = state.copy().change_sort("age")
        next_state.serialize()  # {"filter": "0", "sorts": "age:name", ...}
    """

    def __init__(
        self,
        default_table: Optional[str] = None,
        filters: Sequence[Predicate] = (),
        sorts: str = "",
        filter: int = 0,
        page: int = 1,
        page_size: int = 10,
        count: int = 0,
        conditions: Sequence[Predicate] = (),
        max_sort_columns: int = MAX_COLUMNS,
        inner_offset: int = DEFAULT_INNER_OFFSET,
        outer_offset: int = DEFAULT_OUTER_OFFSET,
    ):
        """
        Initialize ListViewState.

        Args:
            default_table: Table assumed by sort tokens without a qualifier
            filters: Filter predicates cycled through by change_filter
            sorts: Initial serialized sorts, e.g. ``"NAME:age"``
            filter: Initial filter index
            page: Initial page
            page_size: Rows per page, 0 for unpaginated
            count: Result-set size, if already known
            conditions: Fixed predicates always combined with the filter
            max_sort_columns: Number of sort columns remembered
            inner_offset: Pager pages shown on each side of the current page
            outer_offset: Pager anchor pages kept at each end
        """
        if page_size < 0:
            raise ValueError("page_size must be >= 0")
        self.default_table = default_table
        self.sorts = SortList.from_param(sorts, default_table, max_sort_columns)
        self.selector = FilterSelector(tuple(filters), filter)
        self.page = page
        self.page_size = page_size
        self.count = count
        self.conditions = tuple(conditions)
        self.inner_offset = inner_offset
        self.outer_offset = outer_offset

    @classmethod
    def from_config(
        cls,
        config: ListViewConfig,
        default_table: Optional[str] = None,
        filters: Sequence[Predicate] = (),
        conditions: Sequence[Predicate] = (),
    ) -> "ListViewState":
        """Build a state holding the defaults of a ListViewConfig."""
        return cls(
            default_table=default_table,
            filters=filters,
            sorts=config.default_sorts,
            page=config.default_page,
            page_size=config.default_page_size,
            conditions=conditions,
            max_sort_columns=config.max_sort_columns,
            inner_offset=config.inner_offset,
            outer_offset=config.outer_offset,
        )

    @property
    def filter(self) -> int:
        """Index of the selected filter."""
        return self.selector.index

    @property
    def filters(self):
        return self.selector.filters

    def copy(self) -> "ListViewState":
        """Independent duplicate; sort and filter state are immutable values."""
        return copy.copy(self)

    # --- Transitions ---

    def change_sort(self, token: str) -> "ListViewState":
        """
        Make ``token`` the primary sort column.

        Selecting the column that is already primary flips its direction;
        any other column is promoted to the front. The page goes back to 1.
        A malformed token is logged and leaves the state unchanged.
        """
        primary = self.sorts.first
        if primary is not None and primary.matches(token):
            self.sorts = self.sorts.toggle_primary()
        else:
            try:
                self.sorts = self.sorts.push(token)
            except MalformedSortToken as e:
                logger.warning("Ignoring sort change: %s", e)
                return self
        self.page = 1
        logger.debug("Sort changed to %r", self.sorts.to_param())
        return self

    def toggle_sort_order(self) -> "ListViewState":
        """Reverse the direction of every sort column and go back to page 1."""
        self.sorts = self.sorts.toggle_order()
        self.page = 1
        return self

    def change_filter(self) -> "ListViewState":
        """Advance to the next filter; the page resets only if the filter changed."""
        selector = self.selector.advance()
        if selector is not self.selector:
            self.selector = selector
            self.page = 1
            logger.debug("Filter advanced to index %d", selector.index)
        return self

    next_filter = change_filter

    def change_page(self, page: int) -> "ListViewState":
        """Set the page verbatim; bounds are the caller's concern."""
        self.page = page
        return self

    # --- Derived values ---

    def page_count(self) -> int:
        if self.page_size == 0:
            return 1
        return max(1, ceil(self.count / self.page_size))

    def window(self) -> PageWindow:
        return compute_window(self.page, self.page_count(), self.inner_offset, self.outer_offset)

    def filter_clause(self) -> Optional[Predicate]:
        return self.selector.current()

    def filter_description(self) -> str:
        return self.selector.describe()

    def sort_description(self, column_alias: Optional[str] = None) -> str:
        return self.sorts.describe(column_alias)

    def to_query_parameters(self) -> QueryParameters:
        """
        Parameters for the data layer.

        Returns:
            QueryParameters: Raw filter predicate, ORDER BY fragment (None when
                unsorted) and offset/limit (None when unpaginated)
        """
        if self.page_size == 0:
            offset = limit = None
        else:
            offset, limit = (self.page - 1) * self.page_size, self.page_size
        return QueryParameters(
            conditions=self.filter_clause(),
            order=self.sorts.to_order_fragment(),
            offset=offset,
            limit=limit,
        )

    # --- Serialization ---

    def serialize(self) -> Dict[str, str]:
        """Flat string mapping carried between requests."""
        return {
            FILTER_KEY: str(self.filter),
            SORTS_KEY: self.sorts.to_param(),
            PAGE_KEY: str(self.page),
            PAGE_SIZE_KEY: str(self.page_size),
        }

    def deserialize(self, params: Mapping[str, Any], strict: bool = False) -> "ListViewState":
        """
        Load state from a parameter mapping.

        Only keys present in ``params`` are applied, so a request carrying a
        single parameter updates just that facet. Malformed values are logged
        and ignored (malformed sort tokens individually) unless ``strict``.

        Args:
            params: Mapping such as request query parameters or a stored state
            strict: Raise instead of ignoring malformed values

        Returns:
            ListViewState: self

        Raises:
            ValueError: If strict and a value is malformed
            MalformedSortToken: If strict and a sort token is malformed
        """
        values = {}
        for key, raw in params.items():
            key = _ALIASES.get(key, key)
            if key in STATE_KEYS:
                values[key] = raw

        # Parse everything before assigning so a strict failure changes nothing
        index = page = page_size = sorts = None
        if FILTER_KEY in values:
            index = _parse_int(FILTER_KEY, values[FILTER_KEY], 0, strict)
        if SORTS_KEY in values:
            raw_sorts = str(values[SORTS_KEY])
            if strict:
                for token in raw_sorts.split(TOKEN_SEPARATOR):
                    if token:
                        SortSpec.parse(token, self.default_table)
            sorts = self.sorts.update(raw_sorts)
        if PAGE_KEY in values:
            page = _parse_int(PAGE_KEY, values[PAGE_KEY], 1, strict)
        if PAGE_SIZE_KEY in values:
            page_size = _parse_int(PAGE_SIZE_KEY, values[PAGE_SIZE_KEY], 0, strict)

        if index is not None:
            self.selector = self.selector.with_index(index)
        if sorts is not None:
            self.sorts = sorts
        if page is not None:
            self.page = page
        if page_size is not None:
            self.page_size = page_size
        return self

    def __repr__(self) -> str:
        return f"ListViewState({self.serialize()!r}, count={self.count})"
