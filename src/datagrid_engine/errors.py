"""Error taxonomy for the data table engine.

Only programming errors are raised across the public API.  Edit-session
and remote-fetch errors are *returned* inside typed results so the view
layer can render them inline.
"""

from typing import Any


class DataTableError(Exception):
    """Base class for every engine error."""


class RowNotFound(DataTableError):
    """The requested row id is not in the canonical dataset."""

    def __init__(self, row_id: Any) -> None:
        super().__init__(f"Row not found: {row_id!r}")
        self.row_id = row_id


class InvalidField(DataTableError):
    """A field cannot be edited (unknown, not editable, or the id field)."""

    def __init__(self, field: str, reason: str = "not editable") -> None:
        super().__init__(f"Invalid field {field!r}: {reason}")
        self.field = field
        self.reason = reason


class ValidationFailed(DataTableError):
    """One or more pending edit values failed validation.

    Attributes:
        field_errors: Mapping of field name to a human-readable message.
    """

    def __init__(self, field_errors: dict[str, str]) -> None:
        fields = ", ".join(sorted(field_errors))
        super().__init__(f"Validation failed for: {fields}")
        self.field_errors = dict(field_errors)


class NoActiveEdit(DataTableError):
    """An edit operation was requested while no row is being edited."""

    def __init__(self) -> None:
        super().__init__("No active edit session")


class FetchFailed(DataTableError):
    """The remote fetch function raised or returned a malformed response."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Remote fetch failed: {cause}")
        self.cause = cause


class StaleResponseDiscarded(DataTableError):
    """A remote response arrived for a descriptor that is no longer current.

    Internal only: the controller logs and drops these, it never surfaces them.
    """

    def __init__(self, generation: int, latest: int) -> None:
        super().__init__(f"Discarded response for generation {generation} (latest is {latest})")
        self.generation = generation
        self.latest = latest
