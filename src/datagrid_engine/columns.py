"""Immutable column registry: order, visibility and freeze count.

Every change returns a *new* registry.  Toggling one column's visibility is
expressed as "replace the registry with that column's flag flipped".
"""

from collections.abc import Iterable, Iterator, Sequence

from datagrid_engine.models import ColumnDefinition

# Control columns drawn before the data columns.  They are always pinned
# and never count toward the freeze count.
SELECTION_CONTROL_COLUMN = "__select__"
EXPANSION_CONTROL_COLUMN = "__expand__"


class ColumnRegistry:
    """Ordered column definitions plus the frozen-column count.

    Args:
        columns: Column definitions in display order.  Field names must be
            unique.
        freeze_count: Number of leading *visible* columns pinned from
            horizontal scroll.  Clamped to ``[0, len(visible_columns)]``.
        selection_column: Whether a row-selection control column is shown.
        expansion_column: Whether a row-expansion control column is shown.
    """

    def __init__(
        self,
        columns: Iterable[ColumnDefinition] = (),
        *,
        freeze_count: int = 0,
        selection_column: bool = False,
        expansion_column: bool = False,
    ) -> None:
        self._columns: tuple[ColumnDefinition, ...] = tuple(columns)
        seen: set[str] = set()
        for column in self._columns:
            if column.field in seen:
                raise ValueError(f"Duplicate column field: {column.field!r}")
            seen.add(column.field)
        self._by_field = {column.field: column for column in self._columns}
        self._selection_column = selection_column
        self._expansion_column = expansion_column
        self._freeze_count = self._clamp(freeze_count)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[ColumnDefinition]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __contains__(self, field: object) -> bool:
        return field in self._by_field

    def __repr__(self) -> str:
        fields = [c.field if c.visible else f"({c.field})" for c in self._columns]
        return f"ColumnRegistry({fields}, freeze_count={self._freeze_count})"

    @property
    def columns(self) -> tuple[ColumnDefinition, ...]:
        return self._columns

    @property
    def by_field(self) -> dict[str, ColumnDefinition]:
        return dict(self._by_field)

    def get(self, field: str) -> ColumnDefinition | None:
        return self._by_field.get(field)

    @property
    def visible_columns(self) -> tuple[ColumnDefinition, ...]:
        return tuple(column for column in self._columns if column.visible)

    @property
    def hidden_columns(self) -> tuple[ColumnDefinition, ...]:
        return tuple(column for column in self._columns if not column.visible)

    @property
    def freeze_count(self) -> int:
        return self._freeze_count

    @property
    def frozen_columns(self) -> tuple[ColumnDefinition, ...]:
        """The leading visible columns pinned from horizontal scroll."""
        return self.visible_columns[: self._freeze_count]

    @property
    def leading_control_columns(self) -> tuple[str, ...]:
        """Permanently pinned control columns, in drawing order."""
        controls: list[str] = []
        if self._selection_column:
            controls.append(SELECTION_CONTROL_COLUMN)
        if self._expansion_column:
            controls.append(EXPANSION_CONTROL_COLUMN)
        return tuple(controls)

    @property
    def editable_fields(self) -> frozenset[str]:
        return frozenset(column.field for column in self._columns if column.editable)

    def is_editable(self, field: str) -> bool:
        column = self._by_field.get(field)
        return column is not None and column.editable

    def width_bounds(self) -> dict[str, tuple[int, int]]:
        """``{field: (min_width, max_width)}`` for every visible column."""
        return {column.field: column.width_bounds() for column in self.visible_columns}

    # ------------------------------------------------------------------
    # Replacement
    # ------------------------------------------------------------------

    def with_columns(self, columns: Sequence[ColumnDefinition]) -> "ColumnRegistry":
        """Full reset: new column set, freeze count back to 0."""
        return ColumnRegistry(
            columns,
            selection_column=self._selection_column,
            expansion_column=self._expansion_column,
        )

    def with_visibility(self, field: str, visible: bool) -> "ColumnRegistry":
        """Return a registry where *field* is shown or hidden.

        Raises:
            KeyError: If *field* is not registered.
            ValueError: If hiding a column declared with ``can_hide=False``.
        """
        column = self._by_field.get(field)
        if column is None:
            raise KeyError(field)
        if not visible and not column.can_hide:
            raise ValueError(f"Column {field!r} cannot be hidden")
        if column.visible == visible:
            return self
        columns = [c.with_visibility(visible) if c.field == field else c for c in self._columns]
        return self._derive(columns, self._freeze_count)

    def toggle_visibility(self, field: str) -> "ColumnRegistry":
        column = self._by_field.get(field)
        if column is None:
            raise KeyError(field)
        return self.with_visibility(field, not column.visible)

    def with_freeze_count(self, count: int) -> "ColumnRegistry":
        return self._derive(self._columns, count)

    def _derive(self, columns: Sequence[ColumnDefinition], freeze_count: int) -> "ColumnRegistry":
        return ColumnRegistry(
            columns,
            freeze_count=freeze_count,
            selection_column=self._selection_column,
            expansion_column=self._expansion_column,
        )

    def _clamp(self, count: int) -> int:
        return max(0, min(count, len(self.visible_columns)))
