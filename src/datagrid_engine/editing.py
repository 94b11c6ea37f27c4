"""Inline row editing: at most one row is in the editing state at a time.

State machine::

    Idle --start_edit(id)--> Editing(id) --commit() / cancel()--> Idle

Starting an edit while another row is being edited implicitly cancels the
first session (exactly as :meth:`EditSessionManager.cancel` would) before
the new one starts.

Every public method returns an :class:`EditResult`; errors are returned,
never raised, so the view layer can render them inline.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from datagrid_engine.columns import ColumnRegistry
from datagrid_engine.errors import (
    DataTableError,
    InvalidField,
    NoActiveEdit,
    RowNotFound,
    ValidationFailed,
)
from datagrid_engine.models import EditSession
from datagrid_engine.store import RowStore

logger = logging.getLogger(__name__)

RowCallback = Callable[[dict[str, Any]], None]
FieldErrorsCallback = Callable[[dict[str, str]], None]


@dataclass(frozen=True)
class EditResult:
    """Outcome of an edit operation.

    Attributes:
        error: ``None`` on success, otherwise the typed error.
        row: The merged row after a successful commit.
    """

    error: DataTableError | None = None
    row: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def field_errors(self) -> dict[str, str]:
        if isinstance(self.error, ValidationFailed):
            return dict(self.error.field_errors)
        return {}


class EditSessionManager:
    """Tracks the single active :class:`EditSession` of a table.

    Args:
        store: Returns the canonical :class:`RowStore` the session commits to.
            A callable, because the controller swaps stores when the table
            changes between local and remote mode.
        columns: Returns the current :class:`ColumnRegistry`.
        on_row_updated: Called exactly once per successful commit with the
            full merged row.
        on_edit_error: Called with the field-level error map when a commit
            fails validation.
    """

    def __init__(
        self,
        store: Callable[[], RowStore],
        columns: Callable[[], ColumnRegistry],
        *,
        on_row_updated: RowCallback | None = None,
        on_edit_error: FieldErrorsCallback | None = None,
    ) -> None:
        self._store = store
        self._columns = columns
        self.on_row_updated = on_row_updated
        self.on_edit_error = on_edit_error
        self._session: EditSession | None = None

    @property
    def session(self) -> EditSession | None:
        return self._session

    @property
    def is_editing(self) -> bool:
        return self._session is not None

    def is_editing_row(self, row_id: Any) -> bool:
        return self._session is not None and self._session.row_id == row_id

    def start_edit(self, row_id: Any) -> EditResult:
        """Open an edit session seeded with the row's current values."""
        row = self._store().get(row_id)
        if row is None:
            return EditResult(error=RowNotFound(row_id))
        if self._session is not None:
            logger.debug(
                "[DataTable] edit of %r replaced by edit of %r (previous cancelled)",
                self._session.row_id,
                row_id,
            )
            self.cancel()
        self._session = EditSession(row_id=row_id, original=dict(row))
        logger.debug("[DataTable] editing row %r", row_id)
        return EditResult()

    def set_field(self, field: str, value: Any) -> EditResult:
        """Buffer a new value for *field* in the active session."""
        if self._session is None:
            return EditResult(error=NoActiveEdit())
        if field == self._store().id_field:
            return EditResult(error=InvalidField(field, "row identifiers cannot be edited"))
        columns = self._columns()
        if field not in columns:
            return EditResult(error=InvalidField(field, "no such column"))
        if not columns.is_editable(field):
            return EditResult(error=InvalidField(field, "column is not editable"))

        pending = {**self._session.pending, field: value}
        self._session = EditSession(
            row_id=self._session.row_id,
            original=self._session.original,
            pending=pending,
        )
        return EditResult()

    def validate(self) -> dict[str, str]:
        """Field-level errors for the pending values (empty when all valid)."""
        if self._session is None:
            return {}
        columns = self._columns()
        errors: dict[str, str] = {}
        for field, value in self._session.pending.items():
            column = columns.get(field)
            if column is None or not column.editable:
                errors[field] = "Column is no longer editable"
                continue
            message = column.validate_value(value)
            if message is not None:
                errors[field] = message
        return errors

    def commit(self) -> EditResult:
        """Validate and merge the pending values into the canonical row.

        On success the session ends and ``on_row_updated`` fires once.  On
        validation failure the session stays open.  If the row has left the
        dataset the session is discarded and ``RowNotFound`` is returned.
        """
        session = self._session
        if session is None:
            return EditResult(error=NoActiveEdit())

        store = self._store()
        if session.row_id not in store:
            logger.debug("[DataTable] commit of %r failed: row no longer exists", session.row_id)
            self._session = None
            return EditResult(error=RowNotFound(session.row_id))

        field_errors = self.validate()
        if field_errors:
            if self.on_edit_error is not None:
                self.on_edit_error(dict(field_errors))
            return EditResult(error=ValidationFailed(field_errors))

        merged = store.update(session.row_id, session.pending)
        self._session = None
        logger.debug(
            "[DataTable] committed row %r: fields=%s", session.row_id, sorted(session.pending)
        )
        if self.on_row_updated is not None:
            self.on_row_updated(dict(merged))
        return EditResult(row=dict(merged))

    def cancel(self) -> EditResult:
        """Discard the pending values.  No update event fires."""
        if self._session is None:
            return EditResult(error=NoActiveEdit())
        logger.debug("[DataTable] edit of %r cancelled", self._session.row_id)
        self._session = None
        return EditResult()
