"""Cyclic filter selection and application of the selected predicate to queries."""

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

from sqlalchemy import ColumnElement, Select, text
from sqlalchemy.sql.elements import ClauseElement

# A filter predicate is opaque to the selector: a raw SQL string, a
# (template, params) pair, or a SQLAlchemy clause.
Predicate = Any

# Type alias for sanitizer functions turning a raw predicate into a SQL clause
Sanitizer = Callable[[Predicate], Optional[ClauseElement]]


def get_entity_attribute(query: Select, field_name: str) -> Optional[ColumnElement[Any]]:
    """
    Try to get a column-like attribute from the query's entity.

    This enables sorting on computed fields like hybrid_property that have SQL
    expressions defined.

    Args:
        query: SQLAlchemy Select query
        field_name: Name of the attribute to get

    Returns:
        Optional[ColumnElement]: The SQL expression if available, None otherwise
    """
    try:
        column_descriptions = query.column_descriptions
    except (AttributeError, NotImplementedError):
        return None
    if not column_descriptions:
        return None

    entity = column_descriptions[0].get("entity")
    if entity is None:
        return None

    attr = getattr(entity, field_name, None)
    if attr is None:
        return None
    if isinstance(attr, ColumnElement):
        return attr
    if hasattr(attr, "__clause_element__"):
        return attr.__clause_element__()
    return None


def default_sanitizer(predicate: Predicate) -> Optional[ClauseElement]:
    """
    Turn a raw predicate into a SQL clause.

    Strings become ``text()`` clauses, a ``(template, params)`` pair becomes a
    ``text()`` clause with bound parameters, SQLAlchemy clauses pass through.
    Empty predicates yield None.

    Raises:
        TypeError: For predicates of any other type
    """
    if predicate is None:
        return None
    if isinstance(predicate, ClauseElement):
        return predicate
    if hasattr(predicate, "__clause_element__"):
        return predicate.__clause_element__()
    if isinstance(predicate, str):
        return text(predicate) if predicate.strip() else None
    if isinstance(predicate, (tuple, list)) and predicate:
        template, *rest = predicate
        clause = text(template)
        if rest and isinstance(rest[0], Mapping):
            clause = clause.bindparams(**rest[0])
        return clause
    raise TypeError(f"Unsupported filter predicate type: {type(predicate).__name__}")


def _predicate_label(predicate: Predicate) -> str:
    if isinstance(predicate, (tuple, list)):
        return str(predicate[0]) if predicate else ""
    return str(predicate)


@dataclass(frozen=True)
class FilterSelector:
    """
    Cyclic index into an externally owned sequence of filter predicates.

    The active predicate is ``filters[index % len(filters)]``. Selectors are
    immutable; :meth:`advance` returns the next selector.
    """

    filters: Tuple[Predicate, ...] = field(default_factory=tuple)
    index: int = 0

    def __post_init__(self):
        if self.index < 0:
            raise ValueError("filter index must be >= 0")
        object.__setattr__(self, "filters", tuple(self.filters))

    def current(self) -> Optional[Predicate]:
        if not self.filters:
            return None
        return self.filters[self.index % len(self.filters)]

    def advance(self) -> "FilterSelector":
        """Select the next filter. No change with fewer than two filters."""
        if len(self.filters) < 2:
            return self
        return FilterSelector(self.filters, (self.index + 1) % len(self.filters))

    def with_index(self, index: int) -> "FilterSelector":
        return FilterSelector(self.filters, index)

    def describe(self) -> str:
        """Describe the current filter, e.g. ``"Show where age > 18"``."""
        predicate = self.current()
        label = _predicate_label(predicate) if predicate is not None else ""
        return f"Show where {label}" if label else "Show all"


class FilterEngine:
    """
    Engine for applying the selected filter predicate to SQL queries.

    The engine never interprets predicates itself; it hands them to a sanitizer
    (``default_sanitizer`` unless one is supplied) and applies whatever clause
    comes back.
    """

    def __init__(self, sanitizer: Optional[Sanitizer] = None):
        """
        Initialize FilterEngine.

        Args:
            sanitizer: Callable turning a raw predicate into a SQL clause
        """
        self.sanitizer = sanitizer or default_sanitizer

    def build_condition(self, predicate: Predicate) -> Optional[ClauseElement]:
        if predicate is None:
            return None
        return self.sanitizer(predicate)

    def apply_filter(
        self,
        query: Select,
        predicate: Optional[Predicate],
        conditions: Sequence[Predicate] = (),
    ) -> Select:
        """
        Apply the selected predicate, plus any fixed conditions, to a query.

        Args:
            query: Base SQLAlchemy Select query
            predicate: Selected filter predicate (may be None)
            conditions: Extra predicates always AND'ed with the filter

        Returns:
            Select: Query with WHERE clauses applied
        """
        clauses = []
        for raw in (*conditions, predicate):
            clause = self.build_condition(raw)
            if clause is not None:
                clauses.append(clause)
        if clauses:
            query = query.where(*clauses)
        return query
