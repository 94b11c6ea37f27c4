"""Reference remote data source backed by a polars LazyFrame, and a file scanner.

:class:`LazyFrameDataSource` is an async fetch function implementing the
remote contract entirely on the "server" side: the full dataset is never
collected, only the count and the requested page slice are.  It is the
reference for what a real backend must do with a descriptor, and is handy
for tests, demos and the CLI.

Typical usage::

    from datagrid_engine import DataTableController, LazyFrameDataSource, TableMode, scan_file

    lf = scan_file(Path("products.parquet"))
    table = DataTableController(
        [], id_field="id", mode=TableMode.REMOTE, fetch=LazyFrameDataSource(lf),
    )
    await table.refresh()
"""

import asyncio
import logging
import time
from pathlib import Path

import polars as pl

from datagrid_engine.models import QueryDescriptor
from datagrid_engine.polars_utils import (
    apply_filter_rules,
    apply_search,
    apply_sort,
    dataframe_to_rows,
)
from datagrid_engine.remote import FetchResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# File scanner
# ---------------------------------------------------------------------------

def scan_file(path: Path) -> pl.LazyFrame:
    """Scan a data file and return a LazyFrame.

    Auto-detects the file format from the extension:

    * ``.parquet`` / ``.pq`` -- uses ``pl.scan_parquet()``.
    * ``.csv`` -- uses ``pl.scan_csv()``.
    * ``.tsv`` -- uses ``pl.scan_csv(separator="\\t")``.
    * ``.json`` -- uses ``pl.read_json().lazy()`` (no streaming scan).
    * ``.ndjson`` / ``.jsonl`` -- uses ``pl.scan_ndjson()``.
    * ``.ipc`` / ``.arrow`` / ``.feather`` -- uses ``pl.scan_ipc()``.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the file extension is not recognised.
    """
    path = Path(path).resolve()
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    suffix = path.suffix.lower()

    if suffix in (".parquet", ".pq"):
        return pl.scan_parquet(path)
    if suffix == ".csv":
        return pl.scan_csv(path)
    if suffix == ".tsv":
        return pl.scan_csv(path, separator="\t")
    if suffix == ".json":
        return pl.read_json(path).lazy()
    if suffix in (".ndjson", ".jsonl"):
        return pl.scan_ndjson(path)
    if suffix in (".ipc", ".arrow", ".feather"):
        return pl.scan_ipc(path)

    raise ValueError(
        f"Unsupported file extension: {suffix!r}. "
        "Supported: .parquet, .pq, .csv, .tsv, .json, .ndjson, .jsonl, "
        ".ipc, .arrow, .feather"
    )


# ---------------------------------------------------------------------------
# LazyFrameDataSource
# ---------------------------------------------------------------------------

class LazyFrameDataSource:
    """Async fetch function answering descriptors from a LazyFrame.

    Builds a lazy query: search -> filter -> count -> sort -> slice, then
    collects only the count and the page slice.

    Args:
        lf: The polars LazyFrame holding the full dataset.
        latency: Optional artificial delay in seconds before answering
            (simulates a slow API in demos).
    """

    def __init__(self, lf: pl.LazyFrame, *, latency: float = 0.0) -> None:
        self.lf = lf
        self.schema: pl.Schema = lf.collect_schema()
        self.latency = latency
        self.calls = 0

    def query(self, descriptor: QueryDescriptor) -> FetchResponse:
        """Answer *descriptor* synchronously."""
        t0 = time.perf_counter()
        lf = apply_search(self.lf, descriptor.search_text, self.schema)
        lf = apply_filter_rules(lf, descriptor.filters, self.schema)

        total: int = lf.select(pl.len()).collect().item()

        lf = apply_sort(lf, descriptor.sort, self.schema)
        page_df = lf.slice(descriptor.offset, descriptor.page_size).collect()
        rows = dataframe_to_rows(page_df)

        logger.debug(
            "[LazyFrameDataSource] offset=%d, slice=%d, total=%d, elapsed=%.1fms",
            descriptor.offset,
            len(rows),
            total,
            (time.perf_counter() - t0) * 1000,
        )
        return FetchResponse(rows=rows, total_matched=total)

    async def __call__(self, descriptor: QueryDescriptor) -> FetchResponse:
        self.calls += 1
        if self.latency > 0:
            await asyncio.sleep(self.latency)
        return self.query(descriptor)
