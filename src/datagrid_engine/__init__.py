"""datagrid-engine – the data side of an interactive data table.

Search, per-column filters, sorting, pagination, selection, expansion and
inline editing over a local dataset or a remote source, with the same
semantics in both modes.

Install the package with::

    pip install datagrid-engine

Install with the ``[test]`` extra to run the test suite::

    pip install datagrid-engine[test]
"""

from datagrid_engine.columns import ColumnRegistry
from datagrid_engine.config import TableSettings
from datagrid_engine.controller import DataTableController, TableMode
from datagrid_engine.datasource import LazyFrameDataSource, scan_file
from datagrid_engine.editing import EditResult, EditSessionManager
from datagrid_engine.errors import (
    DataTableError,
    FetchFailed,
    InvalidField,
    NoActiveEdit,
    RowNotFound,
    StaleResponseDiscarded,
    ValidationFailed,
)
from datagrid_engine.evaluator import column_value_options, evaluate, matching_rows
from datagrid_engine.export import rows_to_csv, selected_rows_to_csv
from datagrid_engine.filters import matches, matches_all, upsert_filter
from datagrid_engine.models import (
    ColumnDefinition,
    EditSession,
    FilterRule,
    QueryDescriptor,
    SortSpec,
    ViewResult,
)
from datagrid_engine.polars_utils import (
    apply_filter_rules,
    apply_search,
    apply_sort,
    build_column_defs_from_schema,
    descriptor_to_sql,
)
from datagrid_engine.remote import FetchResponse, RemoteBridge
from datagrid_engine.selection import ExpansionTracker, SelectionTracker
from datagrid_engine.store import RowStore
