"""fastapi-listview: Filter, sort and pagination view state for FastAPI + SQLModel lists."""

from . import models as models  # noqa: F401
from .config import ListViewConfig, ListViewPresets  # noqa: F401
from .filters import FilterEngine, FilterSelector, default_sanitizer  # noqa: F401
from .manager import ListViewManager, StateStore, list_view_dependency  # noqa: F401
from .models import (  # noqa: F401
    Links,
    ListViewResponse,
    Meta,
    PageLink,
    PageWindow,
    Pagination,
    QueryParameters,
)
from .pagination import PaginationEngine, compute_window  # noqa: F401
from .sorting import MalformedSortToken, SortEngine, SortList, SortSpec  # noqa: F401
from .state import ListViewState  # noqa: F401

__all__ = [
    # State
    "ListViewState",
    "SortSpec",
    "SortList",
    "FilterSelector",
    "compute_window",
    # Errors
    "MalformedSortToken",
    # FastAPI integration
    "ListViewManager",
    "StateStore",
    "list_view_dependency",
    # Engines
    "FilterEngine",
    "SortEngine",
    "PaginationEngine",
    "default_sanitizer",
    # Configuration
    "ListViewConfig",
    "ListViewPresets",
    # Models
    "QueryParameters",
    "PageWindow",
    "PageLink",
    "Pagination",
    "Meta",
    "Links",
    "ListViewResponse",
    # Module
    "models",
]
