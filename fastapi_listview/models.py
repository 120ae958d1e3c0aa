"""FastAPI list view models"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class QueryParameters(BaseModel):
    """Query-building output of a list view state"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    conditions: Any = None  # raw, unsanitized filter predicate
    order: Optional[str] = None
    offset: Optional[int] = None
    limit: Optional[int] = None


class PageWindow(BaseModel):
    """Page numbers to render in a pager, with ellipsis and prev/next flags"""

    visible_pages: List[int] = []
    entries: List[Optional[int]] = []  # render order, None marks an ellipsis
    ellipsis_before: bool = False
    ellipsis_after: bool = False
    prev_disabled: bool = True
    next_disabled: bool = True

    def __bool__(self) -> bool:
        return bool(self.visible_pages)


class PageLink(BaseModel):
    """Link to one page of the pager"""

    page: int
    url: str
    current: bool = False


class Pagination(BaseModel):
    """Pagination model"""

    count: int
    page: int
    page_size: int
    page_count: int
    window: PageWindow


class Meta(BaseModel):
    """Meta model"""

    pagination: Pagination
    sorts: str
    sort_description: str
    filter: int
    filter_description: str
    state: Dict[str, str]


class Links(BaseModel):
    """Links model"""

    self: str
    first: str
    last: str
    next: Optional[str] = None
    prev: Optional[str] = None
    pages: List[PageLink] = []


class ListViewResponse(BaseModel, Generic[T]):
    """Paginated list view response model"""

    data: List[T]
    meta: Meta
    links: Links
