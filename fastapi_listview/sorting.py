"""Multi-column sort state with a compact, URL-safe string encoding."""

import logging
import re
from typing import Any, Iterator, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import ColumnCollection, ColumnElement, Select, text

from fastapi_listview.filters import get_entity_attribute

logger = logging.getLogger(__name__)

# Maximum number of sort columns retained by default
MAX_COLUMNS = 3

# Separator between tokens in the serialized sort list
TOKEN_SEPARATOR = ":"

_TOKEN_RE = re.compile(r"^(?:(?P<table>[A-Za-z0-9_]+)\.)?(?P<column>[A-Za-z0-9_]+)$")
_LETTER_RE = re.compile(r"[A-Za-z]")


class MalformedSortToken(ValueError):
    """Raised when a sort token does not have the ``[table.]column`` shape."""

    def __init__(self, token: str):
        self.token = token
        super().__init__(f"Malformed sort token '{token}'. Expected '[table.]column'.")


def _first_letter_is_lower(name: str) -> bool:
    """Direction encoded in a raw column name: lowercase (or no letter) means ascending."""
    match = _LETTER_RE.search(name)
    return match is None or match.group().islower()


def _humanize(name: str) -> str:
    label = name.replace("_", " ").strip()
    if label.endswith(" id"):
        label = label[:-3]
    return label[:1].upper() + label[1:]


class SortSpec:
    """
    One column of a sort state.

    A SortSpec is built from a token in SQL form, ``"<table>.<column>"``, where
    the table is optional and falls back to a default table. The case of the
    column's first letter carries the direction: ``"name"`` sorts ascending,
    ``"Name"`` (or ``"NAME"``) sorts descending. Internally the direction is the
    ``ascending`` flag; the case trick only exists in :meth:`parse` and
    :meth:`encode`.

    Instances are immutable. :meth:`toggle_order` returns a new spec.
    """

    __slots__ = ("table", "column", "ascending", "uses_default_table")

    def __init__(
        self,
        column: str,
        table: Optional[str] = None,
        ascending: bool = True,
        uses_default_table: bool = False,
    ):
        object.__setattr__(self, "table", table)
        object.__setattr__(self, "column", column.lower())
        object.__setattr__(self, "ascending", ascending)
        object.__setattr__(self, "uses_default_table", uses_default_table)

    def __setattr__(self, name, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    @classmethod
    def parse(cls, token: str, default_table: Optional[str] = None) -> "SortSpec":
        """
        Parse a sort token.

        Args:
            token: Token of the form ``[table.]column``
            default_table: Table used when the token carries no qualifier

        Returns:
            SortSpec: Parsed sort specification

        Raises:
            MalformedSortToken: If the token does not match ``[table.]column``
        """
        match = _TOKEN_RE.match(token or "")
        if match is None:
            raise MalformedSortToken(token)
        table = match.group("table")
        raw_column = match.group("column")
        uses_default = table is None or (default_table is not None and table == default_table)
        return cls(
            column=raw_column,
            table=default_table if table is None else table,
            ascending=_first_letter_is_lower(raw_column),
            uses_default_table=uses_default,
        )

    def encode(self) -> str:
        """Build the minimal-length token representing this sort."""
        prefix = "" if self.uses_default_table or not self.table else f"{self.table}."
        column = self.column if self.ascending else self.column.upper()
        return prefix + column

    def to_order_fragment(self) -> str:
        """SQL ORDER BY fragment, always table-qualified when a table is known."""
        direction = "ASC" if self.ascending else "DESC"
        if self.table:
            return f"{self.table}.{self.column} {direction}"
        return f"{self.column} {direction}"

    def matches(self, token: str, order_aware: bool = False) -> bool:
        """
        Check whether a token designates the same column as this spec.

        Args:
            token: Sort token to compare
            order_aware: Also require the token's direction to equal this spec's

        Returns:
            bool: True on a match; malformed tokens never match
        """
        match = _TOKEN_RE.match(token or "")
        if match is None:
            return False
        table = match.group("table")
        raw_column = match.group("column")
        if table is None:
            table_ok = self.uses_default_table
        else:
            table_ok = table == self.table
        if not table_ok or raw_column.lower() != self.column:
            return False
        return not order_aware or _first_letter_is_lower(raw_column) == self.ascending

    def toggle_order(self) -> "SortSpec":
        """Return a copy of this spec with the direction flipped."""
        return SortSpec(
            column=self.column,
            table=self.table,
            ascending=not self.ascending,
            uses_default_table=self.uses_default_table,
        )

    def describe(self, column_alias: Optional[str] = None) -> str:
        """Human-readable description, e.g. ``"Sort descending by Last name"``."""
        direction = "ascending" if self.ascending else "descending"
        return f"Sort {direction} by {column_alias or _humanize(self.column)}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SortSpec):
            return NotImplemented
        return (
            self.table == other.table
            and self.column == other.column
            and self.ascending == other.ascending
        )

    def __hash__(self) -> int:
        return hash((self.table, self.column, self.ascending))

    def __repr__(self) -> str:
        return f"SortSpec({self.encode()!r}, table={self.table!r})"

    __str__ = encode


class SortList:
    """
    Ordered, bounded, column-unique collection of :class:`SortSpec`.

    Index 0 is the primary sort key. Pushing a column promotes it to the front
    and evicts the oldest entries beyond ``max_columns``. The list is a value
    type: every operation returns a new SortList.
    """

    __slots__ = ("_specs", "default_table", "max_columns")

    def __init__(
        self,
        specs: Tuple[SortSpec, ...] = (),
        default_table: Optional[str] = None,
        max_columns: int = MAX_COLUMNS,
    ):
        if max_columns < 1:
            raise ValueError("max_columns must be >= 1")
        self._specs = tuple(specs)[:max_columns]
        self.default_table = default_table
        self.max_columns = max_columns

    def _replace(self, specs) -> "SortList":
        return SortList(tuple(specs), self.default_table, self.max_columns)

    @classmethod
    def from_param(
        cls,
        param: str,
        default_table: Optional[str] = None,
        max_columns: int = MAX_COLUMNS,
    ) -> "SortList":
        """Build a SortList from a serialized ``sorts`` parameter."""
        return cls(default_table=default_table, max_columns=max_columns).update(param)

    def update(self, param: str) -> "SortList":
        """
        Reconstitute the sort state from a colon-separated token string.

        Malformed tokens are skipped and logged; the remaining tokens keep their
        left-to-right priority. Repeated columns keep their first occurrence.

        Args:
            param: Serialized sorts, e.g. ``"NAME:widgets.age"``

        Returns:
            SortList: New list holding the parsed sorts
        """
        specs = []
        seen = set()
        for token in (param or "").split(TOKEN_SEPARATOR):
            if not token:
                continue
            try:
                spec = SortSpec.parse(token, self.default_table)
            except MalformedSortToken as e:
                logger.warning("Skipping sort token: %s", e)
                continue
            if spec.column in seen:
                continue
            seen.add(spec.column)
            specs.append(spec)
        return self._replace(specs)

    def push(self, token: str) -> "SortList":
        """
        Promote a column to primary sort key.

        Raises:
            MalformedSortToken: If the token is malformed
        """
        new_spec = SortSpec.parse(token, self.default_table)
        rest = [s for s in self._specs if s.column != new_spec.column]
        return self._replace([new_spec, *rest])

    def toggle_order(self, column: Optional[str] = None) -> "SortList":
        """Flip the direction of every entry, or only of ``column`` when given."""
        if column is None:
            return self._replace(s.toggle_order() for s in self._specs)
        column = column.lower()
        return self._replace(s.toggle_order() if s.column == column else s for s in self._specs)

    def toggle_primary(self) -> "SortList":
        """Flip the direction of the primary sort key only."""
        if not self._specs:
            return self
        return self._replace([self._specs[0].toggle_order(), *self._specs[1:]])

    @property
    def first(self) -> Optional[SortSpec]:
        return self._specs[0] if self._specs else None

    def to_param(self) -> str:
        return TOKEN_SEPARATOR.join(s.encode() for s in self._specs)

    def to_order_fragment(self) -> Optional[str]:
        """ORDER BY fragment, or None when no sort has been chosen."""
        if not self._specs:
            return None
        return ", ".join(s.to_order_fragment() for s in self._specs)

    def describe(self, column_alias: Optional[str] = None) -> str:
        if not self._specs:
            return "Unsorted"
        return self._specs[0].describe(column_alias)

    def __iter__(self) -> Iterator[SortSpec]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __bool__(self) -> bool:
        return bool(self._specs)

    def __getitem__(self, index: int) -> SortSpec:
        return self._specs[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SortList):
            return NotImplemented
        return self._specs == other._specs

    def __hash__(self) -> int:
        return hash(self._specs)

    def __repr__(self) -> str:
        return f"SortList({self.to_param()!r})"

    __str__ = to_param


class SortEngine:
    """
    Engine for applying a :class:`SortList` to SQL queries.

    Each SortSpec is resolved against the query's selected columns (and then the
    query entity's attributes, for computed fields). Specs that cannot be
    resolved are skipped with a warning, or rejected in strict mode. Sorts on
    an explicitly qualified foreign table can be passed through as a textual
    ``table.column DIR`` fragment when the caller has joined that table and
    sets ``allow_foreign_tables``.
    """

    def __init__(self, strict_mode: bool = False, allow_foreign_tables: bool = False):
        """
        Initialize SortEngine.

        Args:
            strict_mode: If True, raise errors for sort columns absent from the query
            allow_foreign_tables: If True, emit unresolved ``table.column`` sorts on a
                non-default table as text fragments
        """
        self.strict_mode = strict_mode
        self.allow_foreign_tables = allow_foreign_tables

    @staticmethod
    def _resolve(query: Select, columns_map, spec: SortSpec):
        column = columns_map.get(spec.column)
        if column is not None and spec.table and not spec.uses_default_table:
            # An explicit foreign table must not bind to a same-named local column
            owner = getattr(getattr(column, "table", None), "name", None)
            if owner is not None and owner != spec.table:
                column = None
        if column is None and (spec.uses_default_table or not spec.table):
            column = get_entity_attribute(query, spec.column)
        return column

    def apply_sort(
        self,
        query: Select,
        columns_map: ColumnCollection[str, ColumnElement[Any]],
        sorts: Optional[SortList],
    ) -> Select:
        """
        Apply sorting to a query.

        Args:
            query: Base SQLAlchemy Select query
            columns_map: Map of column names to column elements
            sorts: Sort state; an empty list leaves the query unordered

        Returns:
            Select: Query with ORDER BY applied

        Raises:
            HTTPException: If strict_mode is True and a sort column cannot be resolved
        """
        if not sorts:
            return query

        clauses = []
        for spec in sorts:
            column = self._resolve(query, columns_map, spec)
            if column is None:
                if self.allow_foreign_tables and spec.table and not spec.uses_default_table:
                    clauses.append(text(spec.to_order_fragment()))
                    continue
                if self.strict_mode:
                    available = ", ".join(sorted(columns_map.keys()))
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail=(
                            f"Unknown sort field '{spec.encode()}'. Available fields: {available}"
                        ),
                    )
                logger.warning("Ignoring unknown sort field %r", spec.encode())
                continue
            clauses.append(column.asc() if spec.ascending else column.desc())
        if not clauses:
            return query
        return query.order_by(*clauses)
