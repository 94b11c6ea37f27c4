"""Local evaluator: (dataset, descriptor) -> ViewResult, pure and synchronous.

The pipeline order is fixed: search -> filter -> count -> sort -> slice.
Structured cells are first reduced to canonical lower-cased text (and one
typed ordering key for the sort field) in a small polars frame keyed by
row position; the lazy query then runs over that frame and the sliced
positions are mapped back to copies of the caller's rows.
"""

import logging
import re
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import polars as pl

from datagrid_engine import cells
from datagrid_engine.columns import ColumnRegistry
from datagrid_engine.filters import resolve_text
from datagrid_engine.models import ColumnDefinition, QueryDescriptor, SortSpec, ViewResult
from datagrid_engine.polars_utils import search_expr, text_match_expr

logger = logging.getLogger(__name__)

_ROW_INDEX = "__row_index__"
_SORT_KEY = "__sort_key__"

Row = Mapping[str, Any]
ColumnsArg = ColumnRegistry | Mapping[str, ColumnDefinition] | Iterable[ColumnDefinition] | None


def _text_column(field: str) -> str:
    return f"__text__{field}"


def _column_map(columns: ColumnsArg) -> dict[str, ColumnDefinition]:
    if columns is None:
        return {}
    if isinstance(columns, ColumnRegistry):
        return columns.by_field
    if isinstance(columns, Mapping):
        return dict(columns)
    return {column.field: column for column in columns}


def _fields(dataset: Sequence[Row], descriptor: QueryDescriptor) -> list[str]:
    """Ordered union of every field present in any row plus every filtered field."""
    seen: dict[str, None] = {}
    for row in dataset:
        for name in row:
            seen.setdefault(name, None)
    for rule in descriptor.active_filters:
        seen.setdefault(rule.field, None)
    return list(seen)


def _sort_keys(values: list[Any], column: ColumnDefinition | None) -> pl.Series:
    """Typed ordering keys: Float64 when every present key is numeric, else String."""
    if column is not None:
        keys = [column.sort_key(value) for value in values]
    elif cells.is_numeric_column(values):
        keys = [cells.coerce_number(value) for value in values]
    else:
        keys = [None if value is None else cells.generic_text(value).casefold() for value in values]

    present = [key for key in keys if key is not None]
    if all(isinstance(key, (int, float)) and not isinstance(key, bool) for key in present):
        floats = [cells.coerce_number(key) for key in keys]
        return pl.Series(_SORT_KEY, floats, dtype=pl.Float64)
    return pl.Series(_SORT_KEY, [None if key is None else str(key) for key in keys], dtype=pl.String)


def build_frame(
    dataset: Sequence[Row],
    fields: Sequence[str],
    columns: Mapping[str, ColumnDefinition],
    sort: SortSpec,
) -> pl.DataFrame:
    """Build the evaluation frame: row position, lower-cased texts, sort key."""
    data: dict[str, pl.Series] = {
        _ROW_INDEX: pl.Series(_ROW_INDEX, list(range(len(dataset))), dtype=pl.Int64),
    }
    for name in fields:
        column = columns.get(name)
        texts = [resolve_text(row, name, column).lower() for row in dataset]
        data[_text_column(name)] = pl.Series(_text_column(name), texts, dtype=pl.String)
    if sort.is_active:
        data[_SORT_KEY] = _sort_keys([row.get(sort.field) for row in dataset], columns.get(sort.field))
    return pl.DataFrame(data)


def _narrow(lf: pl.LazyFrame, descriptor: QueryDescriptor, fields: Sequence[str]) -> pl.LazyFrame:
    """Apply search, then every active filter rule (AND)."""
    needle = descriptor.search_text.strip()
    if needle:
        texts = [pl.col(_text_column(name)) for name in fields]
        lf = lf.filter(search_expr(texts, needle))

    active = descriptor.active_filters
    if active:
        exprs = [
            text_match_expr(pl.col(_text_column(rule.field)), rule.operator, rule.value)
            for rule in active
        ]
        lf = lf.filter(pl.all_horizontal(exprs))
    return lf


def _sort(lf: pl.LazyFrame, sort: SortSpec) -> pl.LazyFrame:
    if not sort.is_active:
        return lf
    return lf.sort(
        _SORT_KEY,
        descending=sort.direction == "desc",
        nulls_last=True,
        maintain_order=True,
    )


def _check_descriptor(descriptor: QueryDescriptor) -> None:
    if not isinstance(descriptor, QueryDescriptor):
        raise TypeError(f"Expected QueryDescriptor, got {type(descriptor).__name__}")
    if descriptor.page < 1 or descriptor.page_size < 1:
        raise ValueError(
            f"Malformed descriptor: page={descriptor.page}, page_size={descriptor.page_size}"
        )


def evaluate(
    dataset: Sequence[Row],
    descriptor: QueryDescriptor,
    columns: ColumnsArg = None,
) -> ViewResult:
    """Evaluate *descriptor* against the full in-memory *dataset*.

    Args:
        dataset: Every row of the table, in canonical order.
        descriptor: What subset of the data should be visible.
        columns: Column definitions (a registry, a ``{field: column}``
            mapping, or an iterable).  Fields without a definition use the
            generic text rule and inferred ordering.

    Returns:
        A :class:`ViewResult` with at most ``page_size`` rows (copies of
        the input rows), ``total_matched`` counted after search and filter,
        and ``is_loading=False``.  A page past the end yields no rows.

    Raises:
        ValueError: If the descriptor is malformed.
    """
    _check_descriptor(descriptor)
    t0 = time.perf_counter()
    column_map = _column_map(columns)
    fields = _fields(dataset, descriptor)

    lf = build_frame(dataset, fields, column_map, descriptor.sort).lazy()
    lf = _narrow(lf, descriptor, fields)
    total_matched: int = lf.select(pl.len()).collect().item()

    lf = _sort(lf, descriptor.sort)
    page_df = lf.slice(descriptor.offset, descriptor.page_size).select(_ROW_INDEX).collect()
    rows = tuple(dict(dataset[index]) for index in page_df[_ROW_INDEX].to_list())

    logger.debug(
        "[DataTable] local evaluate: matched=%d, page=%d, slice=%d, elapsed=%.1fms",
        total_matched,
        descriptor.page,
        len(rows),
        (time.perf_counter() - t0) * 1000,
    )
    return ViewResult(rows=rows, total_matched=total_matched, is_loading=False)


def matching_rows(
    dataset: Sequence[Row],
    descriptor: QueryDescriptor,
    columns: ColumnsArg = None,
) -> list[dict[str, Any]]:
    """Every row that survives search and filter, in sorted order (no pagination)."""
    _check_descriptor(descriptor)
    column_map = _column_map(columns)
    fields = _fields(dataset, descriptor)
    lf = build_frame(dataset, fields, column_map, descriptor.sort).lazy()
    lf = _sort(_narrow(lf, descriptor, fields), descriptor.sort)
    indices = lf.select(_ROW_INDEX).collect()[_ROW_INDEX].to_list()
    return [dict(dataset[index]) for index in indices]


# ---------------------------------------------------------------------------
# Filter dropdown value options
# ---------------------------------------------------------------------------

_WHITESPACE = re.compile(r"\s+")


def _option_texts(value: Any, column: ColumnDefinition | None) -> list[str]:
    """Individual option texts of one cell (multi-value cells yield several)."""
    if value is None:
        return []
    if isinstance(value, Mapping) and isinstance(value.get("values"), list):
        return [cells.generic_text(item) for item in value["values"]]
    if isinstance(value, (list, tuple)) and (column is None or column.type != "tag"):
        return [cells.generic_text(item) for item in value]
    if column is not None:
        return [column.display_text(value)]
    return [cells.generic_text(value)]


def _option_sort_key(text: str) -> tuple[int, float, str]:
    number = cells.coerce_number(text)
    if number is not None:
        return (0, number, "")
    return (1, 0.0, text.lower())


def column_value_options(
    dataset: Sequence[Row],
    field: str,
    column: ColumnDefinition | None = None,
    *,
    max_unique: int = 500,
) -> list[str] | None:
    """Distinct canonical texts of *field*, for a filter dropdown.

    Values are trimmed and de-duplicated case- and whitespace-insensitively
    (the first spelling wins).  Numeric values sort numerically before
    text values, which sort case-insensitively.

    Returns:
        The sorted option list, or ``None`` when there are more than
        *max_unique* distinct values (fall back to a free-text filter).
    """
    texts = [
        text.strip()
        for row in dataset
        for text in _option_texts(row.get(field), column)
        if text and text.strip()
    ]
    if not texts:
        return []

    keys = [_WHITESPACE.sub(" ", text.lower()) for text in texts]
    df = pl.DataFrame({"text": texts, "key": keys})
    unique = df.unique(subset="key", keep="first", maintain_order=True)["text"].to_list()
    if len(unique) > max_unique:
        return None
    return sorted(unique, key=_option_sort_key)
