"""FastAPI integration: list view state per request, query application and links."""

import logging
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence

from fastapi import HTTPException, Request, status
from sqlalchemy import Select
from sqlmodel import Session
from sqlmodel.ext.asyncio.session import AsyncSession

from fastapi_listview.config import ListViewConfig
from fastapi_listview.filters import FilterEngine, Predicate, Sanitizer
from fastapi_listview.models import Links, ListViewResponse, Meta, PageLink, Pagination
from fastapi_listview.pagination import PaginationEngine
from fastapi_listview.sorting import SortEngine
from fastapi_listview.state import ListViewState

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    """Persistence hook for serialized list view states (e.g. a session)."""

    def load(self, name: str) -> Optional[Mapping[str, str]]: ...

    def save(self, name: str, state: Mapping[str, str]) -> None: ...


class ListViewManager:
    """
    Request-scoped list view: state, query application and URL building.

    Orchestrates FilterEngine, SortEngine and PaginationEngine around a
    :class:`ListViewState`. URLs for sort, filter and page links are built from
    copies of the state so the displayed state is never mutated.
    """

    def __init__(
        self,
        request: Request,
        state: ListViewState,
        config: Optional[ListViewConfig] = None,
        sanitizer: Optional[Sanitizer] = None,
    ):
        """
        Initialize ListViewManager.

        Args:
            request: FastAPI Request object (for building links)
            state: List view state of this request
            config: ListViewConfig in effect
            sanitizer: Callable turning raw filter predicates into SQL clauses
        """
        self.request = request
        self.state = state
        self.config = config or ListViewConfig()
        self._filter_engine = FilterEngine(sanitizer=sanitizer)
        self._sort_engine = SortEngine(
            strict_mode=self.config.strict_mode,
            allow_foreign_tables=self.config.allow_foreign_sorts,
        )

    # --- Query application ---

    def apply(self, query: Select) -> Select:
        """
        Apply the filter and sort state to a query (no pagination).

        Args:
            query: Base SQLAlchemy Select query

        Returns:
            Select: Filtered and ordered query
        """
        columns_map = query.selected_columns
        query = self._filter_engine.apply_filter(
            query, self.state.filter_clause(), self.state.conditions
        )
        return self._sort_engine.apply_sort(query, columns_map, self.state.sorts)

    def generate_response(self, query: Select, session: Session) -> ListViewResponse[Any]:
        """
        Run the query for the current page and build the response.

        The total count is stored on the state before links are built.

        Args:
            query: Base SQLAlchemy Select query
            session: Database session

        Returns:
            ListViewResponse: Page data, meta and links
        """
        engine = PaginationEngine(self.state.to_query_parameters())
        data, total = engine.paginate_with_count(self.apply(query), session)
        self.state.count = total
        return self.build_response(data)

    async def generate_response_async(
        self, query: Select, session: AsyncSession
    ) -> ListViewResponse[Any]:
        """Async version of generate_response."""
        engine = PaginationEngine(self.state.to_query_parameters())
        data, total = await engine.paginate_with_count_async(self.apply(query), session)
        self.state.count = total
        return self.build_response(data)

    # --- Links ---

    def url_for(self, state: ListViewState) -> str:
        return str(self.request.url.include_query_params(**state.serialize()))

    def sort_url(self, token: str) -> str:
        """URL of the list sorted by ``token`` (toggled if already primary)."""
        return self.url_for(self.state.copy().change_sort(token))

    def filter_url(self) -> str:
        return self.url_for(self.state.copy().change_filter())

    def page_url(self, page: int) -> str:
        return self.url_for(self.state.copy().change_page(page))

    def build_links(self) -> Links:
        state = self.state
        total_pages = state.page_count()
        window = state.window()
        return Links(
            self=self.url_for(state),
            first=self.page_url(1),
            last=self.page_url(total_pages),
            next=None if window.next_disabled else self.page_url(state.page + 1),
            prev=None if window.prev_disabled else self.page_url(state.page - 1),
            pages=[
                PageLink(page=n, url=self.page_url(n), current=n == state.page)
                for n in window.visible_pages
            ],
        )

    def build_response(self, data_page: Any) -> ListViewResponse[Any]:
        """
        Build the response for already fetched page data.

        Args:
            data_page: Rows of the current page

        Returns:
            ListViewResponse: Final response object
        """
        state = self.state
        return ListViewResponse(
            data=data_page,
            meta=Meta(
                pagination=Pagination(
                    count=state.count,
                    page=state.page,
                    page_size=state.page_size,
                    page_count=state.page_count(),
                    window=state.window(),
                ),
                sorts=state.sorts.to_param(),
                sort_description=state.sort_description(),
                filter=state.filter,
                filter_description=state.filter_description(),
                state=state.serialize(),
            ),
            links=self.build_links(),
        )


def list_view_dependency(
    default_table: Optional[str] = None,
    filters: Sequence[Predicate] = (),
    conditions: Sequence[Predicate] = (),
    config: Optional[ListViewConfig] = None,
    name: Optional[str] = None,
    state_store: Optional[StateStore] = None,
    sanitizer: Optional[Sanitizer] = None,
) -> Callable[[Request], ListViewManager]:
    """
    Create a FastAPI dependency providing a ListViewManager.

    The state starts from the config defaults, then the stored state (if a
    store is given), then the request's query parameters, each overriding the
    previous one key by key. The resulting state is saved back to the store.

    Args:
        default_table: Table assumed by unqualified sort tokens
        filters: Filter predicates cycled through by the ``filter`` parameter
        conditions: Fixed predicates always applied
        config: ListViewConfig, defaults to ListViewConfig()
        name: Key of this list in the state store, defaults to default_table
        state_store: Optional persistence hook
        sanitizer: Optional predicate sanitizer

    Returns:
        Callable: Dependency for ``Depends``

    Example:
        heroes_view = list_view_dependency("hero", filters=[None, "hero.age >= 18"])

        @app.get("/heroes/")
        def read_heroes(
            session: Session = Depends(get_session),
            view: ListViewManager = Depends(heroes_view),
        ):
            return view.generate_response(select(Hero), session)
    """
    config = config or ListViewConfig()
    store_key = name or default_table or "list"

    def dependency(request: Request) -> ListViewManager:
        state = ListViewState.from_config(config, default_table, filters, conditions)
        if state_store is not None:
            stored = state_store.load(store_key)
            if stored:
                state.deserialize(stored)
        try:
            state.deserialize(request.query_params, strict=config.strict_mode)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

        state.page = config.validate_page(state.page)
        state.page_size = config.validate_page_size(state.page_size)

        if state_store is not None:
            state_store.save(store_key, state.serialize())
        logger.debug("List view %r state: %r", store_key, state)
        return ListViewManager(request, state, config=config, sanitizer=sanitizer)

    return dependency
