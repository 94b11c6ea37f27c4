"""CSV export of table rows, rendered the way cells read on screen."""

from collections.abc import Collection, Iterable, Mapping, Sequence
from datetime import date, datetime
from typing import Any

import polars as pl

from datagrid_engine import cells
from datagrid_engine.models import ColumnDefinition


def _format_date(value: Any, *, show_time: bool = False) -> str:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            return value
    if isinstance(value, datetime):
        return value.strftime("%b %d, %Y %H:%M" if show_time else "%b %d, %Y")
    if isinstance(value, date):
        return value.strftime("%b %d, %Y")
    return cells.generic_text(value)


def export_text(column: ColumnDefinition, value: Any) -> str:
    """Render one cell for export.

    Examples:
        avatar ``{"label": "Ada", "sublabel": "Admin"}`` -> ``"Ada (Admin)"``
        multiselect ``{"values": ["a", "b"], "labels": ["A", "B"]}`` -> ``"A, B"``
        date ``"2024-03-01"`` -> ``"Mar 01, 2024"``
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"

    if column.type == "avatar" and isinstance(value, Mapping) and "label" in value:
        label = cells.generic_text(value.get("label"))
        sublabel = value.get("sublabel")
        return f"{label} ({sublabel})" if sublabel else label
    if column.type == "date":
        if isinstance(value, Mapping) and "date" in value:
            return _format_date(value["date"], show_time=bool(value.get("showTime")))
        return _format_date(value)
    if column.type == "dropdown" and isinstance(value, Mapping) and "selectedValue" not in value:
        return cells.generic_text(value.get("label") or value.get("value"))
    return column.display_text(value)


def rows_to_csv(rows: Sequence[Mapping[str, Any]], columns: Sequence[ColumnDefinition]) -> str:
    """Render *rows* as CSV text with one column per definition (headers first).

    Raises:
        ValueError: If there are no rows to export.
    """
    if not rows:
        raise ValueError("No data available for export")

    data = {
        column.label: [export_text(column, row.get(column.field)) for row in rows]
        for column in columns
    }
    return pl.DataFrame(data, schema={column.label: pl.String for column in columns}).write_csv()


def selected_rows_to_csv(
    rows: Iterable[Mapping[str, Any]],
    selected_ids: Collection[Any],
    id_field: str,
    columns: Sequence[ColumnDefinition],
) -> str:
    """Export only the rows whose id is in *selected_ids*, keeping *rows* order.

    Raises:
        ValueError: If no row is selected.
    """
    chosen = [row for row in rows if row.get(id_field) in selected_ids]
    if not chosen:
        raise ValueError("Please select at least one row to export")
    return rows_to_csv(chosen, columns)
