"""The canonical dataset: ordered rows indexed by their caller-supplied id."""

from collections.abc import Iterable, Iterator, Mapping
from typing import Any


class RowStore:
    """Ordered rows with a unique id per row.

    The store copies rows on the way in and never writes to the id field.

    Raises:
        ValueError: If a row lacks *id_field* or two rows share an id.
    """

    def __init__(self, id_field: str, rows: Iterable[Mapping[str, Any]] = ()) -> None:
        self.id_field = id_field
        self._rows: list[dict[str, Any]] = []
        self._positions: dict[Any, int] = {}
        self.replace_all(rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(self._rows)

    def __contains__(self, row_id: object) -> bool:
        return row_id in self._positions

    @property
    def rows(self) -> list[dict[str, Any]]:
        return self._rows

    def ids(self) -> frozenset[Any]:
        return frozenset(self._positions)

    def get(self, row_id: Any) -> dict[str, Any] | None:
        position = self._positions.get(row_id)
        return None if position is None else self._rows[position]

    def replace_all(self, rows: Iterable[Mapping[str, Any]]) -> None:
        new_rows: list[dict[str, Any]] = []
        positions: dict[Any, int] = {}
        for index, row in enumerate(rows):
            if self.id_field not in row:
                raise ValueError(f"Row {index} has no {self.id_field!r} field")
            row_id = row[self.id_field]
            if row_id in positions:
                raise ValueError(f"Duplicate row id: {row_id!r}")
            positions[row_id] = index
            new_rows.append(dict(row))
        self._rows = new_rows
        self._positions = positions

    def update(self, row_id: Any, changes: Mapping[str, Any]) -> dict[str, Any]:
        """Merge *changes* into the row and return the merged row.

        Raises:
            KeyError: If *row_id* is absent.
            ValueError: If *changes* would rewrite the id field.
        """
        position = self._positions[row_id]
        if self.id_field in changes and changes[self.id_field] != row_id:
            raise ValueError("Row identifiers are owned by the caller and cannot be edited")
        merged = {**self._rows[position], **changes}
        self._rows[position] = merged
        return merged
