"""Polars building blocks shared by the local evaluator and the LazyFrame data source."""

from collections.abc import Sequence
from typing import Any

import polars as pl

from datagrid_engine.cells import ColumnType
from datagrid_engine.models import ColumnDefinition, FilterRule, QueryDescriptor, SortSpec


def polars_dtype_to_column_type(dtype: pl.DataType) -> ColumnType:
    """Map a polars DataType to the closest engine column type.

    Args:
        dtype: A polars data type.

    Returns:
        ``"number"`` for numeric dtypes, ``"date"`` for Date/Datetime,
        ``"text"`` for everything else (String, Categorical, Boolean, List, ...).
    """
    if isinstance(dtype, pl.Boolean):
        return "text"
    if dtype.is_numeric():
        return "number"
    if isinstance(dtype, (pl.Date, pl.Datetime)):
        return "date"
    return "text"


def _col_to_str_expr(col: pl.Expr, dtype: pl.DataType) -> pl.Expr:
    """Convert a column expression to a String, handling List/Array/Struct types.

    * ``List(T)`` / ``Array(T, n)`` -> cast inner to String, then ``list.join(", ")``
    * Everything else -> ``cast(pl.String)``
    """
    if isinstance(dtype, (pl.List, pl.Array)):
        return col.cast(pl.List(pl.String)).list.join(", ")
    return col.cast(pl.String)


def lowered_text_expr(field: str, dtype: pl.DataType) -> pl.Expr:
    """Lower-cased text of *field* with nulls as ``""``."""
    return _col_to_str_expr(pl.col(field), dtype).fill_null("").str.to_lowercase()


def text_match_expr(text: pl.Expr, operator: str, value: str) -> pl.Expr:
    """Compare an already lower-cased text expression with a rule value.

    Mirrors :func:`datagrid_engine.filters.compare_text`.
    """
    needle = value.lower()
    if operator == "equals":
        return text == needle
    if operator == "contains":
        return text.str.contains(needle, literal=True)
    if operator == "startsWith":
        return text.str.starts_with(needle)
    if operator == "endsWith":
        return text.str.ends_with(needle)
    raise ValueError(f"Unknown filter operator: {operator!r}")


def search_expr(texts: Sequence[pl.Expr], search_text: str) -> pl.Expr:
    """True where *any* of the lower-cased *texts* contains *search_text*."""
    if not texts:
        return pl.lit(False)
    needle = search_text.lower()
    return pl.any_horizontal([text.str.contains(needle, literal=True) for text in texts])


# ---------------------------------------------------------------------------
# Raw-LazyFrame query stages (server side)
# ---------------------------------------------------------------------------

def apply_search(
    lf: pl.LazyFrame,
    search_text: str,
    schema: pl.Schema | None = None,
) -> pl.LazyFrame:
    """Keep rows where any column's text contains *search_text* (case-insensitive).

    Returns *lf* unchanged when the trimmed search text is empty -- **no collect**.
    """
    needle = search_text.strip()
    if not needle:
        return lf
    if schema is None:
        schema = lf.collect_schema()
    texts = [lowered_text_expr(name, dtype) for name, dtype in schema.items()]
    return lf.filter(search_expr(texts, needle))


def apply_filter_rules(
    lf: pl.LazyFrame,
    rules: Sequence[FilterRule],
    schema: pl.Schema | None = None,
) -> pl.LazyFrame:
    """AND-combine *rules* on a raw LazyFrame and return the filtered frame.

    Inert rules are skipped.

    Raises:
        ValueError: If a rule refers to a column that is not in the schema.
    """
    active = [rule for rule in rules if not rule.is_inert]
    if not active:
        return lf
    if schema is None:
        schema = lf.collect_schema()

    exprs: list[pl.Expr] = []
    for rule in active:
        if rule.field not in schema:
            raise ValueError(f"Unknown filter field: {rule.field!r}")
        text = lowered_text_expr(rule.field, schema[rule.field])
        exprs.append(text_match_expr(text, rule.operator, rule.value))

    return lf.filter(pl.all_horizontal(exprs))


def apply_sort(
    lf: pl.LazyFrame,
    sort: SortSpec,
    schema: pl.Schema | None = None,
) -> pl.LazyFrame:
    """Stable sort of a raw LazyFrame; nulls last in both directions.

    String columns sort case-insensitively, every other dtype natively.
    """
    if not sort.is_active:
        return lf
    if schema is None:
        schema = lf.collect_schema()
    if sort.field not in schema:
        raise ValueError(f"Unknown sort field: {sort.field!r}")

    dtype = schema[sort.field]
    key = pl.col(sort.field)
    if polars_dtype_to_column_type(dtype) == "text":
        key = _col_to_str_expr(key, dtype).str.to_lowercase()
    return lf.sort(
        key,
        descending=sort.direction == "desc",
        nulls_last=True,
        maintain_order=True,
    )


# ---------------------------------------------------------------------------
# SQL generation for remote implementers
# ---------------------------------------------------------------------------

def _sql_like_literal(value: str) -> str:
    escaped = value.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped.replace("'", "''")


def _rule_to_sql(rule: FilterRule) -> str:
    col = f'LOWER(CAST("{rule.field}" AS TEXT))'
    literal = _sql_like_literal(rule.value)
    if rule.operator == "equals":
        plain = rule.value.lower().replace("'", "''")
        return f"{col} = '{plain}'"
    if rule.operator == "contains":
        return f"{col} LIKE '%{literal}%' ESCAPE '\\'"
    if rule.operator == "startsWith":
        return f"{col} LIKE '{literal}%' ESCAPE '\\'"
    return f"{col} LIKE '%{literal}' ESCAPE '\\'"


def descriptor_to_sql(
    descriptor: QueryDescriptor,
    *,
    table_name: str = "df",
    search_columns: Sequence[str] = (),
) -> str:
    """Generate the SQL a server can run to answer *descriptor*.

    The statement assumes a table or view named *table_name* exists.  The
    search text is matched against *search_columns*; without them the
    search clause is omitted.

    Returns:
        A ``SELECT`` statement ending with ``LIMIT ... OFFSET ...;``.
    """
    parts: list[str] = [f"SELECT * FROM {table_name}"]
    conditions: list[str] = []

    needle = descriptor.search_text.strip()
    if needle and search_columns:
        literal = _sql_like_literal(needle)
        ors = " OR ".join(
            f"LOWER(CAST(\"{name}\" AS TEXT)) LIKE '%{literal}%' ESCAPE '\\'"
            for name in search_columns
        )
        conditions.append(f"({ors})")

    conditions.extend(_rule_to_sql(rule) for rule in descriptor.active_filters)
    if conditions:
        parts.append("WHERE " + " AND ".join(conditions))

    if descriptor.sort.is_active:
        direction = descriptor.sort.direction.upper()
        parts.append(f'ORDER BY "{descriptor.sort.field}" {direction} NULLS LAST')

    parts.append(f"LIMIT {descriptor.page_size} OFFSET {descriptor.offset}")
    return "\n".join(parts) + ";"


# ---------------------------------------------------------------------------
# Schema and row conversion
# ---------------------------------------------------------------------------

def build_column_defs_from_schema(
    schema: pl.Schema,
    *,
    id_field: str | None = None,
    show_id_field: bool = False,
    editable: bool = False,
) -> list[ColumnDefinition]:
    """Build :class:`ColumnDefinition` objects from a polars Schema without collecting data.

    Args:
        schema: A polars ``Schema`` (e.g. ``lf.collect_schema()``).
        id_field: Name of the row identifier column.
        show_id_field: Whether to include the *id_field* column.
        editable: Mark every non-id column editable.

    Returns:
        Column definitions in schema order.
    """
    column_defs: list[ColumnDefinition] = []
    for col_name, dtype in schema.items():
        if not show_id_field and col_name == id_field:
            continue
        column_defs.append(
            ColumnDefinition(
                field=col_name,
                type=polars_dtype_to_column_type(dtype),
                editable=editable and col_name != id_field,
            )
        )
    return column_defs


def dataframe_to_rows(df: pl.DataFrame) -> list[dict[str, Any]]:
    """Convert a DataFrame to a list of row dicts.

    Temporal columns other than Date/Datetime (Time, Duration) and Struct
    columns are cast to String; List columns are comma-joined.  Other types
    are left as-is (polars ``to_dicts()`` already returns Python-native
    scalars).
    """
    exprs: list[pl.Expr] = []
    needs_cast = False
    for name, dtype in df.schema.items():
        if isinstance(dtype, (pl.Time, pl.Duration, pl.Struct)):
            exprs.append(pl.col(name).cast(pl.String))
            needs_cast = True
        elif isinstance(dtype, (pl.List, pl.Array)):
            exprs.append(_col_to_str_expr(pl.col(name), dtype))
            needs_cast = True
        else:
            exprs.append(pl.col(name))

    if not needs_cast:
        return df.to_dicts()
    return df.select(exprs).to_dicts()
