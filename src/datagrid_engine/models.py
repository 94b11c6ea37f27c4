"""Pydantic models for column definitions, filter rules and query descriptors.

Attributes are snake_case in Python and serialise to camelCase on the wire
(``model_dump(by_alias=True)``), so a descriptor can be handed to a remote
data source as-is.
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from datagrid_engine import cells
from datagrid_engine.cells import ColumnType

FilterOperator = Literal["equals", "contains", "startsWith", "endsWith"]
SortDirection = Literal["asc", "desc", "none"]

FILTER_OPERATORS: tuple[str, ...] = ("equals", "contains", "startsWith", "endsWith")


class _FrozenModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ColumnDefinition(_FrozenModel):
    """Column definition for the data table.

    The engine never draws anything; ``render_cell`` is carried for the
    view layer only.  ``text_getter`` and ``sort_key_getter`` override the
    per-type canonical text / ordering key (see :mod:`datagrid_engine.cells`).

    Immutable once created: use :meth:`with_visibility` to derive a copy.
    """

    field: str
    header: str | None = None
    type: ColumnType = "text"
    sortable: bool = True
    editable: bool = False
    filterable: bool = True
    visible: bool = True
    can_hide: bool = True
    min_width: int | None = Field(default=None, ge=0)
    max_width: int | None = Field(default=None, ge=0)
    render_cell: Callable[..., Any] | None = Field(default=None, exclude=True)
    validator: Callable[[Any], str | None] | None = Field(default=None, exclude=True)
    text_getter: Callable[[Any], str] | None = Field(default=None, exclude=True)
    sort_key_getter: Callable[[Any], Any] | None = Field(default=None, exclude=True)

    @property
    def label(self) -> str:
        """Header text, falling back to a humanised field name."""
        if self.header:
            return self.header
        return self.field.strip("_").replace("_", " ").title()

    def display_text(self, value: Any) -> str:
        """Canonical display text of a cell in this column."""
        if self.text_getter is not None:
            return self.text_getter(value)
        return cells.display_text(self.type, value)

    def sort_key(self, value: Any) -> Any:
        """Ordering key of a cell in this column (``None`` sorts last)."""
        if self.sort_key_getter is not None:
            return self.sort_key_getter(value)
        return cells.sort_key(self.type, value)

    @property
    def orders_numerically(self) -> bool:
        return self.sort_key_getter is None and (
            self.type in cells.NUMERIC_TYPES or self.type == "date"
        )

    def validate_value(self, value: Any) -> str | None:
        """Validate *value* against the column type, then the custom validator."""
        message = cells.validate_value(self.type, value)
        if message is None and self.validator is not None:
            message = self.validator(value)
        return message

    def width_bounds(self) -> tuple[int, int]:
        """``(min_width, max_width)`` with per-type defaults filled in."""
        default_min, default_max = cells.default_width_bounds(self.type)
        return (
            self.min_width if self.min_width is not None else default_min,
            self.max_width if self.max_width is not None else default_max,
        )

    def with_visibility(self, visible: bool) -> "ColumnDefinition":
        return self.model_copy(update={"visible": visible})


def _new_rule_id() -> str:
    return uuid.uuid4().hex


class FilterRule(_FrozenModel):
    """One user-defined filter condition.

    A rule whose ``value`` is empty or whitespace-only is inert: it matches
    every row, whatever the operator.
    """

    id: str = Field(default_factory=_new_rule_id)
    field: str
    operator: FilterOperator = "contains"
    value: str = ""

    @property
    def is_inert(self) -> bool:
        return not self.value.strip()

    def to_wire(self) -> dict[str, str]:
        """The stable ``{id, field, operator, value}`` shape sent to remote sources."""
        return {
            "id": self.id,
            "field": self.field,
            "operator": self.operator,
            "value": self.value,
        }


class SortSpec(_FrozenModel):
    field: str | None = None
    direction: SortDirection = "none"

    @property
    def is_active(self) -> bool:
        return self.field is not None and self.direction != "none"


class QueryDescriptor(_FrozenModel):
    """Immutable snapshot of everything that determines the visible rows.

    ``page`` is 1-based.  A descriptor with ``page < 1`` or
    ``page_size < 1`` is a programming error and fails validation.
    """

    search_text: str = ""
    filters: tuple[FilterRule, ...] = ()
    sort: SortSpec = Field(default_factory=SortSpec)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def active_filters(self) -> tuple[FilterRule, ...]:
        return tuple(rule for rule in self.filters if not rule.is_inert)

    def replace(self, **changes: Any) -> "QueryDescriptor":
        """Return a new, validated descriptor with *changes* applied."""
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self).model_validate(data)

    def to_wire(self) -> dict[str, Any]:
        """camelCase JSON-safe dict, e.g. ``{"searchText": ..., "pageSize": ...}``."""
        data = self.model_dump(by_alias=True, mode="json")
        data["filters"] = [rule.to_wire() for rule in self.filters]
        return data


# ---------------------------------------------------------------------------
# Derived results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ViewResult:
    """The rows and count the view layer renders.  Derived, never hand-edited."""

    rows: tuple[dict[str, Any], ...] = ()
    total_matched: int = 0
    is_loading: bool = False

    def ids(self, id_field: str) -> list[Any]:
        return [row[id_field] for row in self.rows]

    def page_count(self, page_size: int) -> int:
        if self.total_matched == 0:
            return 1
        return -(-self.total_matched // page_size)


@dataclass(frozen=True)
class EditSession:
    """The single row currently being edited.

    ``original`` is the row as it was when editing started; ``pending``
    holds only the fields the caller has changed since.
    """

    row_id: Any
    original: dict[str, Any]
    pending: dict[str, Any] = field(default_factory=dict)

    @property
    def values(self) -> dict[str, Any]:
        return {**self.original, **self.pending}
