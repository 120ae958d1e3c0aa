"""Configuration classes for fastapi-listview."""

from dataclasses import dataclass
from typing import Optional

from fastapi_listview.pagination import DEFAULT_INNER_OFFSET, DEFAULT_OUTER_OFFSET
from fastapi_listview.sorting import MAX_COLUMNS


@dataclass
class ListViewConfig:
    """
    Configuration for list view behavior.

    Attributes:
        default_page_size: Page size when none is requested (default: 10)
        max_page_size: Largest accepted page size (default: 100)
        allow_unpaginated: Accept page_size=0, meaning "everything on one page" (default: True)
        default_page: Page used when none (or an invalid one) is requested (default: 1)
        default_sorts: Serialized sorts applied before any request state (default: none)
        max_sort_columns: Number of sort columns remembered (default: 3)
        allow_foreign_sorts: Order by `table.column` sorts on joined tables that are
            not among the selected columns (default: False)
        inner_offset: Pager pages shown on each side of the current page (default: 4)
        outer_offset: Pager anchor pages kept at each end (default: 1)
        strict_mode: If True, reject malformed request parameters with HTTP 400
            instead of ignoring them (default: False)

    Example:
        config = ListViewConfig(default_page_size=25, inner_offset=2)
        list_view = list_view_dependency("heroes", config=config)
    """

    # Pagination settings
    default_page_size: int = 10
    max_page_size: int = 100
    allow_unpaginated: bool = True
    default_page: int = 1

    # Sort settings
    default_sorts: str = ""
    max_sort_columns: int = MAX_COLUMNS
    allow_foreign_sorts: bool = False

    # Pager window settings
    inner_offset: int = DEFAULT_INNER_OFFSET
    outer_offset: int = DEFAULT_OUTER_OFFSET

    # Validation settings
    strict_mode: bool = False

    def __post_init__(self):
        """Validate configuration values."""
        if self.max_page_size < 1:
            raise ValueError("max_page_size must be >= 1")
        if self.default_page_size < 0:
            raise ValueError("default_page_size must be >= 0")
        if self.default_page_size == 0 and not self.allow_unpaginated:
            raise ValueError("default_page_size of 0 requires allow_unpaginated")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        if self.default_page < 1:
            raise ValueError("default_page must be >= 1")
        if self.max_sort_columns < 1:
            raise ValueError("max_sort_columns must be >= 1")
        if self.inner_offset < 0 or self.outer_offset < 0:
            raise ValueError("inner_offset and outer_offset must be >= 0")

    def validate_page(self, page: int) -> int:
        """Return a usable page number; pages below 1 fall back to default_page."""
        if page < 1:
            return self.default_page
        return page

    def validate_page_size(self, page_size: int) -> int:
        """
        Constrain a requested page size.

        Args:
            page_size: Requested items per page, 0 for unpaginated

        Returns:
            int: 0 when unpaginated mode is allowed and requested, otherwise the
                value clamped to ``[1, max_page_size]``
        """
        if page_size == 0 and self.allow_unpaginated:
            return 0
        if page_size < 1:
            return 1
        return min(page_size, self.max_page_size)


class ListViewPresets:
    """Pre-defined ListViewConfig presets for common use cases."""

    @staticmethod
    def default() -> ListViewConfig:
        return ListViewConfig()

    @staticmethod
    def strict() -> ListViewConfig:
        """Strict mode configuration - rejects malformed request parameters."""
        return ListViewConfig(strict_mode=True)

    @staticmethod
    def unpaginated() -> ListViewConfig:
        """Show every row on a single page unless a page size is requested."""
        return ListViewConfig(default_page_size=0)

    @staticmethod
    def compact_pager(
        inner_offset: int = 2, outer_offset: int = 0, default_sorts: Optional[str] = None
    ) -> ListViewConfig:
        """
        Configuration with a narrow pager window.

        Args:
            inner_offset: Pages shown on each side of the current page
            outer_offset: Anchor pages kept at each end
            default_sorts: Optional serialized default sorts
        """
        return ListViewConfig(
            inner_offset=inner_offset,
            outer_offset=outer_offset,
            default_sorts=default_sorts or "",
        )
