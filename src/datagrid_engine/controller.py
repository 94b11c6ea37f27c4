"""The data table controller: owns the descriptor and the current view.

Every user interaction that changes the visible subset (search, filter,
sort, page, page size) produces a new immutable :class:`QueryDescriptor`
and exactly one evaluation of it:

* **local mode** -- evaluated synchronously by :func:`evaluate`;
* **remote mode** -- one asynchronous fetch through the :class:`RemoteBridge`,
  scheduled on the running event loop.  The returned :class:`asyncio.Task`
  may be awaited by the caller.

Remote fetches are tagged with a monotonically increasing generation.  A
response whose generation is not the latest is dropped, so a slow earlier
request can never overwrite a faster later one.

The controller is single-writer: call it from one event loop / UI thread.

Typical usage::

    table = DataTableController(rows, id_field="id", columns=columns,
                                on_view_change=render)
    table.set_search("laptop")
    table.set_sort("price", "asc")
    table.select_all()
"""

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from enum import Enum
from typing import Any, Literal

from datagrid_engine.columns import ColumnRegistry
from datagrid_engine.config import TableSettings
from datagrid_engine.editing import EditResult, EditSessionManager, FieldErrorsCallback, RowCallback
from datagrid_engine.errors import FetchFailed, StaleResponseDiscarded
from datagrid_engine.evaluator import column_value_options, evaluate, matching_rows
from datagrid_engine.export import selected_rows_to_csv
from datagrid_engine.filters import remove_filter, update_filter, upsert_filter
from datagrid_engine.models import (
    ColumnDefinition,
    EditSession,
    FilterOperator,
    FilterRule,
    QueryDescriptor,
    SortDirection,
    SortSpec,
    ViewResult,
)
from datagrid_engine.remote import FetchFunction, RemoteBridge
from datagrid_engine.selection import ChangeCallback, ExpansionTracker, SelectAllState, SelectionTracker
from datagrid_engine.store import RowStore

logger = logging.getLogger(__name__)

ViewCallback = Callable[[ViewResult], None]
Pending = asyncio.Task[None] | None


class TableMode(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


def _require_loop() -> asyncio.AbstractEventLoop:
    """Return the running loop, before any state changes that need it."""
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        raise RuntimeError("Remote evaluation needs a running event loop") from None


class DataTableController:
    """Reconciles a local dataset or a remote source into one current view.

    Args:
        rows: The canonical dataset for local mode.
        id_field: Name of the field holding each row's unique id.
        columns: Column definitions (or a ready :class:`ColumnRegistry`).
        mode: Explicit evaluation mode.  Never inferred from data size.
        fetch: Async fetch function; required for remote mode and for
            auto-escalation.
        auto_escalate: When ``True``, a descriptor change submitted with
            ``requires_server=True`` while in local mode switches the table
            to remote mode for good (until :meth:`switch_to_local`).
            Defaults to ``settings.auto_escalate``.
        page_size: Initial page size.  Defaults to
            ``settings.default_page_size``.
        selection_column: Draw a pinned row-selection control column.
        expansion_column: Draw a pinned row-expansion control column.
        settings: Engine defaults; read from the environment when omitted.
        on_view_change: Called with every new :class:`ViewResult`.
        on_row_updated: Called once with the merged row after each commit.
        on_selection_change: Called with the selected id set when it changes.
        on_expansion_change: Called with the expanded id set when it changes.
        on_edit_error: Called with field-level errors when a commit fails
            validation.

    Raises:
        ValueError: If remote mode or auto-escalation is requested without
            a fetch function, or the rows are invalid.
    """

    def __init__(
        self,
        rows: Iterable[Mapping[str, Any]] = (),
        *,
        id_field: str,
        columns: ColumnRegistry | Iterable[ColumnDefinition] = (),
        mode: TableMode | str = TableMode.LOCAL,
        fetch: FetchFunction | None = None,
        auto_escalate: bool | None = None,
        page_size: int | None = None,
        selection_column: bool = False,
        expansion_column: bool = False,
        settings: TableSettings | None = None,
        on_view_change: ViewCallback | None = None,
        on_row_updated: RowCallback | None = None,
        on_selection_change: ChangeCallback | None = None,
        on_expansion_change: ChangeCallback | None = None,
        on_edit_error: FieldErrorsCallback | None = None,
    ) -> None:
        self.settings = settings or TableSettings()
        self.id_field = id_field
        self._mode = TableMode(mode)
        self._auto_escalate = (
            self.settings.auto_escalate if auto_escalate is None else auto_escalate
        )
        self._bridge = RemoteBridge(fetch, id_field) if fetch is not None else None
        if self._bridge is None and (self._mode is TableMode.REMOTE or self._auto_escalate):
            raise ValueError("Remote mode and auto-escalation require a fetch function")

        self._local = RowStore(id_field, rows)
        self._remote = RowStore(id_field)
        if isinstance(columns, ColumnRegistry):
            self._columns = columns
        else:
            self._columns = ColumnRegistry(
                columns,
                selection_column=selection_column,
                expansion_column=expansion_column,
            )

        self._descriptor = QueryDescriptor(
            page_size=page_size if page_size is not None else self.settings.default_page_size,
        )
        self._view = ViewResult()
        self._last_good = ViewResult()
        self._error: FetchFailed | None = None
        self._generation = 0
        self._pending: set[asyncio.Task[None]] = set()
        self.escalated = False

        self.on_view_change = on_view_change
        self.selection = SelectionTracker(on_change=on_selection_change)
        self.expansion = ExpansionTracker(on_change=on_expansion_change)
        self.editor = EditSessionManager(
            lambda: self.store,
            lambda: self._columns,
            on_row_updated=on_row_updated,
            on_edit_error=on_edit_error,
        )

        if self._mode is TableMode.LOCAL:
            self._view = self._last_good = evaluate(self._local.rows, self._descriptor, self._columns)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def mode(self) -> TableMode:
        return self._mode

    @property
    def descriptor(self) -> QueryDescriptor:
        return self._descriptor

    @property
    def view(self) -> ViewResult:
        return self._view

    @property
    def error(self) -> FetchFailed | None:
        """The last remote failure, cleared by the next successful evaluation."""
        return self._error

    @property
    def is_loading(self) -> bool:
        return self._view.is_loading

    @property
    def columns(self) -> ColumnRegistry:
        return self._columns

    @property
    def store(self) -> RowStore:
        """The canonical dataset: every local row, or the latest remote page."""
        return self._remote if self._mode is TableMode.REMOTE else self._local

    @property
    def rows(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self.store]

    @property
    def page_count(self) -> int:
        return self._view.page_count(self._descriptor.page_size)

    @property
    def page_size_options(self) -> list[int]:
        return list(self.settings.page_size_options)

    @property
    def visible_ids(self) -> list[Any]:
        return self._view.ids(self.id_field)

    # ------------------------------------------------------------------
    # Descriptor changes
    # ------------------------------------------------------------------

    def submit(self, descriptor: QueryDescriptor, *, requires_server: bool = False) -> Pending:
        """Make *descriptor* current and evaluate it once.

        Args:
            descriptor: The new descriptor.
            requires_server: Mark the change as needing the remote source
                (e.g. an advanced multi-rule filter).  Triggers escalation
                when the policy is enabled.

        Returns:
            The fetch task in remote mode, ``None`` in local mode.

        Raises:
            ValueError: If the descriptor refers to unknown or unsortable
                columns.
            RuntimeError: If the change must be fetched remotely and no
                event loop is running.  Nothing is changed in that case.
        """
        escalate = requires_server and self._mode is TableMode.LOCAL and self._auto_escalate
        if escalate or self._mode is TableMode.REMOTE:
            _require_loop()
        self._check_fields(descriptor)
        self._descriptor = descriptor
        if escalate:
            self._escalate()
        return self._evaluate_current()

    def set_search(self, text: str) -> Pending:
        return self.submit(self._descriptor.replace(search_text=text, page=1))

    def set_filters(self, rules: Sequence[FilterRule], *, requires_server: bool = False) -> Pending:
        return self.submit(
            self._descriptor.replace(filters=tuple(rules), page=1),
            requires_server=requires_server,
        )

    def add_filter(
        self,
        field: str,
        operator: FilterOperator = "contains",
        value: str = "",
        *,
        requires_server: bool = False,
    ) -> Pending:
        rule = FilterRule(field=field, operator=operator, value=value)
        return self.set_filters((*self._descriptor.filters, rule), requires_server=requires_server)

    def update_filter(self, rule_id: str, *, requires_server: bool = False, **changes: Any) -> Pending:
        return self.set_filters(
            update_filter(self._descriptor.filters, rule_id, **changes),
            requires_server=requires_server,
        )

    def remove_filter(self, rule_id: str, *, requires_server: bool = False) -> Pending:
        return self.set_filters(
            remove_filter(self._descriptor.filters, rule_id),
            requires_server=requires_server,
        )

    def set_column_filter(self, field: str, value: str, operator: FilterOperator = "contains") -> Pending:
        """Header filter: at most one rule per column; an empty value removes it."""
        return self.set_filters(upsert_filter(self._descriptor.filters, field, value, operator))

    def clear_filters(self) -> Pending:
        return self.set_filters(())

    def clear_all(self) -> Pending:
        """Clear the search text and every filter rule in one change."""
        return self.submit(self._descriptor.replace(search_text="", filters=(), page=1))

    def set_sort(self, field: str | None, direction: SortDirection = "asc") -> Pending:
        if field is None:
            direction = "none"
        return self.submit(self._descriptor.replace(sort=SortSpec(field=field, direction=direction)))

    def toggle_sort(self, field: str) -> Pending:
        """Header click: a new field sorts ascending, the same field flips direction."""
        current = self._descriptor.sort
        direction: SortDirection = "asc"
        if current.field == field and current.direction == "asc":
            direction = "desc"
        return self.set_sort(field, direction)

    def set_page(self, page: int) -> Pending:
        return self.submit(self._descriptor.replace(page=page))

    def next_page(self) -> Pending:
        if self._descriptor.page >= self.page_count:
            return None
        return self.set_page(self._descriptor.page + 1)

    def previous_page(self) -> Pending:
        if self._descriptor.page <= 1:
            return None
        return self.set_page(self._descriptor.page - 1)

    def set_page_size(self, page_size: int) -> Pending:
        """Change the slice size; always returns to page 1."""
        return self.submit(self._descriptor.replace(page_size=page_size, page=1))

    def refresh(self) -> Pending:
        """Re-evaluate the current descriptor (the manual retry after a failure)."""
        return self._evaluate_current()

    # ------------------------------------------------------------------
    # Mode
    # ------------------------------------------------------------------

    def switch_to_remote(self) -> Pending:
        if self._bridge is None:
            raise ValueError("Remote mode requires a fetch function")
        if self._mode is TableMode.REMOTE:
            return None
        _require_loop()
        logger.info("[DataTable] switching mode: local -> remote")
        self._mode = TableMode.REMOTE
        self._descriptor = self._descriptor.replace(page=1)
        return self._evaluate_current()

    def switch_to_local(self) -> Pending:
        """Explicit return to local evaluation.  Pending fetches become stale."""
        if self._mode is TableMode.LOCAL:
            return None
        logger.info("[DataTable] switching mode: remote -> local")
        self._mode = TableMode.LOCAL
        self.escalated = False
        self._generation += 1
        self._descriptor = self._descriptor.replace(page=1)
        return self._evaluate_current()

    def _escalate(self) -> None:
        logger.info("[DataTable] auto-escalating to remote mode for a server-only operation")
        self._mode = TableMode.REMOTE
        self.escalated = True

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _check_fields(self, descriptor: QueryDescriptor) -> None:
        if len(self._columns) == 0:
            return
        for rule in descriptor.filters:
            if rule.field not in self._columns:
                raise ValueError(f"Filter refers to unknown column {rule.field!r}")
        sort = descriptor.sort
        if sort.is_active:
            column = self._columns.get(sort.field)
            if column is None:
                raise ValueError(f"Sort refers to unknown column {sort.field!r}")
            if not column.sortable:
                raise ValueError(f"Column {sort.field!r} is not sortable")

    def _publish(self, view: ViewResult) -> None:
        self._view = view
        if not view.is_loading:
            self._last_good = view
        if self.on_view_change is not None:
            self.on_view_change(view)

    def _evaluate_current(self) -> Pending:
        descriptor = self._descriptor
        if self._mode is TableMode.LOCAL:
            self._error = None
            self._publish(evaluate(self._local.rows, descriptor, self._columns))
            return None
        return self._start_fetch(descriptor)

    def _start_fetch(self, descriptor: QueryDescriptor) -> asyncio.Task[None]:
        loop = _require_loop()
        self._generation += 1
        generation = self._generation
        logger.debug("[DataTable] fetch #%d started: %s", generation, descriptor.to_wire())
        self._publish(dataclasses.replace(self._last_good, is_loading=True))
        task = loop.create_task(self._resolve_fetch(descriptor, generation))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _resolve_fetch(self, descriptor: QueryDescriptor, generation: int) -> None:
        if self._bridge is None:
            raise RuntimeError("Remote fetch started without a fetch function")
        outcome = await self._bridge.fetch(descriptor)

        if generation != self._generation:
            logger.debug("[DataTable] %s", StaleResponseDiscarded(generation, self._generation))
            return

        if isinstance(outcome, ViewResult):
            try:
                self._remote.replace_all(outcome.rows)
            except ValueError as exc:
                outcome = FetchFailed(exc)

        if isinstance(outcome, FetchFailed):
            self._error = outcome
            self._publish(dataclasses.replace(self._last_good, is_loading=False))
            return

        self._error = None
        self._publish(outcome)

    async def wait_idle(self) -> None:
        """Await every fetch still in flight (mostly for tests and scripts)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # ------------------------------------------------------------------
    # Dataset
    # ------------------------------------------------------------------

    def set_data(self, rows: Iterable[Mapping[str, Any]]) -> None:
        """Replace the local dataset and, in local mode, re-evaluate the view.

        An active edit session is kept; committing it fails with
        ``RowNotFound`` if its row is gone.
        """
        self._local.replace_all(rows)
        if self._mode is TableMode.LOCAL:
            self._evaluate_current()

    def value_options(self, field: str) -> list[str] | None:
        """Distinct values for a column's filter dropdown."""
        return column_value_options(
            self.store.rows,
            field,
            self._columns.get(field),
            max_unique=self.settings.value_options_max_unique,
        )

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    @property
    def edit_session(self) -> EditSession | None:
        return self.editor.session

    def start_edit(self, row_id: Any) -> EditResult:
        return self.editor.start_edit(row_id)

    def set_field(self, field: str, value: Any) -> EditResult:
        return self.editor.set_field(field, value)

    def cancel_edit(self) -> EditResult:
        return self.editor.cancel()

    def commit_edit(self) -> EditResult:
        """Commit the active session and bring the view in line with the new row."""
        result = self.editor.commit()
        if not result.ok or result.row is None:
            return result

        if self._mode is TableMode.LOCAL:
            self._evaluate_current()
        else:
            row_id = result.row[self.id_field]
            rows = tuple(
                dict(result.row) if row[self.id_field] == row_id else row for row in self._view.rows
            )
            self._publish(dataclasses.replace(self._view, rows=rows))
        return result

    # ------------------------------------------------------------------
    # Selection and expansion
    # ------------------------------------------------------------------

    def _existing_ids(self) -> frozenset[Any] | None:
        # Remote mode only knows the current page, so ids are not pruned there.
        if self._mode is TableMode.REMOTE:
            return None
        return self._local.ids()

    def select(self, row_id: Any) -> bool:
        return self.selection.select(row_id)

    def deselect(self, row_id: Any) -> bool:
        return self.selection.deselect(row_id)

    def toggle_selection(self, row_id: Any) -> bool:
        return self.selection.toggle(row_id)

    def _scope_ids(self, scope: Literal["page", "filtered"]) -> list[Any]:
        if scope == "page":
            return self.visible_ids
        if scope == "filtered":
            if self._mode is TableMode.REMOTE:
                raise ValueError("Selecting the whole filtered result requires local mode")
            rows = matching_rows(self._local.rows, self._descriptor, self._columns)
            return [row[self.id_field] for row in rows]
        raise ValueError(f"Unknown selection scope: {scope!r}")

    def select_all(self, scope: Literal["page", "filtered"] = "page") -> bool:
        """Select every row of the current page, or of the whole filtered result."""
        return self.selection.select_all(self._scope_ids(scope))

    def deselect_all(self, scope: Literal["page", "filtered"] = "page") -> bool:
        return self.selection.deselect_all(self._scope_ids(scope))

    def clear_selection(self) -> bool:
        return self.selection.clear()

    def is_selected(self, row_id: Any) -> bool:
        return self.selection.is_selected(row_id, self._existing_ids())

    @property
    def selected_ids(self) -> frozenset[Any]:
        return self.selection.selected(self._existing_ids())

    @property
    def selected_count(self) -> int:
        return len(self.selected_ids)

    def select_all_state(self) -> SelectAllState:
        return self.selection.select_all_state(self.visible_ids)

    def expand(self, row_id: Any) -> bool:
        return self.expansion.expand(row_id)

    def collapse(self, row_id: Any) -> bool:
        return self.expansion.collapse(row_id)

    def toggle_expansion(self, row_id: Any) -> bool:
        return self.expansion.toggle(row_id)

    def collapse_all(self) -> bool:
        return self.expansion.clear()

    def is_expanded(self, row_id: Any) -> bool:
        return self.expansion.is_expanded(row_id, self._existing_ids())

    @property
    def expanded_ids(self) -> frozenset[Any]:
        return self.expansion.expanded(self._existing_ids())

    # ------------------------------------------------------------------
    # Columns
    # ------------------------------------------------------------------

    def set_columns(self, columns: Sequence[ColumnDefinition]) -> Pending:
        """Replace the whole column set (freeze count resets).

        Filter rules and the sort on columns that no longer exist are
        dropped; the view is then re-evaluated once.
        """
        self._columns = self._columns.with_columns(columns)
        descriptor = self._descriptor
        kept = tuple(rule for rule in descriptor.filters if rule.field in self._columns)
        sort = descriptor.sort
        if sort.is_active and (sort.field not in self._columns or not self._columns.get(sort.field).sortable):
            sort = SortSpec()
        pruned = descriptor.replace(filters=kept, sort=sort)
        if pruned != descriptor:
            return self.submit(pruned)
        if self._mode is TableMode.LOCAL:
            return self._evaluate_current()
        return None

    def set_column_visibility(self, field: str, visible: bool) -> ColumnRegistry:
        self._columns = self._columns.with_visibility(field, visible)
        return self._columns

    def toggle_column(self, field: str) -> ColumnRegistry:
        self._columns = self._columns.toggle_visibility(field)
        return self._columns

    def set_freeze_count(self, count: int) -> ColumnRegistry:
        self._columns = self._columns.with_freeze_count(count)
        return self._columns

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_selected_csv(self) -> str:
        """CSV of the selected rows over the visible columns.

        Local mode exports from the whole filtered, sorted result; remote
        mode from the current page.

        Raises:
            ValueError: If no row is selected.
        """
        if self._mode is TableMode.LOCAL:
            rows = matching_rows(self._local.rows, self._descriptor, self._columns)
        else:
            rows = list(self._view.rows)
        columns = self._columns.visible_columns or tuple(
            ColumnDefinition(field=name) for name in (rows[0] if rows else {})
        )
        return selected_rows_to_csv(rows, self.selected_ids, self.id_field, columns)
