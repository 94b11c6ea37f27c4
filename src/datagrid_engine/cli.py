"""CLI for datagrid-engine -- query tabular files the way the table would.

Usage::

    # First page of a CSV, searched and sorted
    datagrid-engine query products.csv --search laptop --sort price:desc

    # Column filters (field:operator:value, operator defaults to contains)
    datagrid-engine query products.parquet -f category:equals:Electronics -f name:lap

    # Same descriptor answered through the remote contract
    datagrid-engine query products.parquet --remote --page 2 --page-size 20

    # Filter dropdown options for a column
    datagrid-engine values products.csv category

    # SQL a server would run for a descriptor
    datagrid-engine sql --search lap -s name -s category --sort price:asc
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import polars as pl
import typer

from datagrid_engine.config import TableSettings
from datagrid_engine.controller import DataTableController, TableMode
from datagrid_engine.datasource import LazyFrameDataSource, scan_file
from datagrid_engine.evaluator import column_value_options
from datagrid_engine.models import FILTER_OPERATORS, FilterRule, QueryDescriptor, SortSpec
from datagrid_engine.polars_utils import build_column_defs_from_schema, dataframe_to_rows, descriptor_to_sql

app = typer.Typer(
    name="datagrid-engine",
    help="Search, filter, sort and paginate tabular files from the command line.",
    no_args_is_help=True,
)

ROW_ID_FIELD = "__row_id__"

FilterOption = Annotated[
    Optional[list[str]],
    typer.Option("--filter", "-f", help="Column filter as field:operator:value (repeatable)"),
]
SearchOption = Annotated[str, typer.Option("--search", help="Global search text")]
SortOption = Annotated[Optional[str], typer.Option("--sort", help="Sort as field:asc or field:desc")]
PageOption = Annotated[int, typer.Option("--page", min=1, help="1-based page number")]
PageSizeOption = Annotated[Optional[int], typer.Option("--page-size", min=1, help="Rows per page")]


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log engine debug output")] = False,
) -> None:
    settings = TableSettings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Option parsing
# ---------------------------------------------------------------------------

def _parse_filter(text: str) -> FilterRule:
    """``field:value`` or ``field:operator:value``.

    The value may itself contain colons unless its first segment names an
    operator.
    """
    parts = text.split(":", 2)
    if len(parts) == 3 and parts[1] in FILTER_OPERATORS:
        field, operator, value = parts
        return FilterRule(field=field, operator=operator, value=value)
    field, sep, value = text.partition(":")
    if sep and field:
        return FilterRule(field=field, value=value)
    raise typer.BadParameter(
        f"{text!r}: expected field:value or field:operator:value "
        f"with operator in {', '.join(FILTER_OPERATORS)}",
        param_hint="--filter",
    )


def _parse_sort(text: str | None) -> SortSpec:
    if not text:
        return SortSpec()
    field, _, direction = text.partition(":")
    direction = direction or "asc"
    if direction not in ("asc", "desc"):
        raise typer.BadParameter(f"{text!r}: direction must be asc or desc", param_hint="--sort")
    return SortSpec(field=field, direction=direction)


def _build_descriptor(
    search: str,
    filters: list[str] | None,
    sort: str | None,
    page: int,
    page_size: int | None,
) -> QueryDescriptor:
    return QueryDescriptor(
        search_text=search,
        filters=tuple(_parse_filter(text) for text in filters or ()),
        sort=_parse_sort(sort),
        page=page,
        page_size=page_size or TableSettings().default_page_size,
    )


def _load(file: Path) -> pl.LazyFrame:
    try:
        return scan_file(file)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def query(
    file: Annotated[Path, typer.Argument(help="Path to the data file (CSV, TSV, Parquet, JSON, etc.)")],
    search: SearchOption = "",
    filters: FilterOption = None,
    sort: SortOption = None,
    page: PageOption = 1,
    page_size: PageSizeOption = None,
    id_field: Annotated[
        Optional[str], typer.Option("--id-field", help="Unique id column (default: row number)")
    ] = None,
    remote: Annotated[
        bool, typer.Option("--remote", help="Answer through the remote contract instead of in memory")
    ] = False,
) -> None:
    """Print one page of FILE after search, filters and sort."""
    lf = _load(file)
    if id_field is None:
        id_field = ROW_ID_FIELD
        lf = lf.with_row_index(ROW_ID_FIELD)

    descriptor = _build_descriptor(search, filters, sort, page, page_size)
    columns = build_column_defs_from_schema(lf.collect_schema(), id_field=id_field)

    try:
        if remote:
            table = DataTableController(
                id_field=id_field,
                columns=columns,
                mode=TableMode.REMOTE,
                fetch=LazyFrameDataSource(lf),
            )

            async def run() -> None:
                task = table.submit(descriptor)
                if task is not None:
                    await task

            asyncio.run(run())
        else:
            table = DataTableController(dataframe_to_rows(lf.collect()), id_field=id_field, columns=columns)
            table.submit(descriptor)
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1)

    if table.error is not None:
        typer.echo(f"Error: {table.error}", err=True)
        raise typer.Exit(code=1)

    view = table.view
    shown = [{k: v for k, v in row.items() if k != ROW_ID_FIELD} for row in view.rows]
    typer.echo(pl.DataFrame(shown) if shown else "(no rows)")

    first = descriptor.offset + 1 if view.rows else 0
    last = descriptor.offset + len(view.rows)
    typer.echo(f"Showing rows {first}-{last} of {view.total_matched}")


@app.command()
def values(
    file: Annotated[Path, typer.Argument(help="Path to the data file")],
    field: Annotated[str, typer.Argument(help="Column to list values for")],
) -> None:
    """Print the filter dropdown options of FIELD, one per line."""
    lf = _load(file)
    if field not in lf.collect_schema():
        typer.echo(f"Error: no such column: {field}", err=True)
        raise typer.Exit(code=1)

    rows = dataframe_to_rows(lf.select(field).collect())
    options = column_value_options(rows, field, max_unique=TableSettings().value_options_max_unique)
    if options is None:
        typer.echo("Too many distinct values for a dropdown filter")
        return
    for option in options:
        typer.echo(option)


@app.command()
def sql(
    search: SearchOption = "",
    search_columns: Annotated[
        Optional[list[str]],
        typer.Option("--search-column", "-s", help="Column matched by the search text (repeatable)"),
    ] = None,
    filters: FilterOption = None,
    sort: SortOption = None,
    page: PageOption = 1,
    page_size: PageSizeOption = None,
    table: Annotated[str, typer.Option("--table", help="Table name in the FROM clause")] = "df",
) -> None:
    """Print the SQL statement a server would run for the descriptor."""
    descriptor = _build_descriptor(search, filters, sort, page, page_size)
    typer.echo(descriptor_to_sql(descriptor, table_name=table, search_columns=search_columns or ()))


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
