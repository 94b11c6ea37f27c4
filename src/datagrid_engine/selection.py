"""Row selection and row expansion state, keyed by row id.

Both sets survive descriptor changes (page, search, filter).  Ids that no
longer exist in the canonical dataset stay recorded but are ignored on
read when the caller passes the current id set.
"""

from collections.abc import Callable, Collection, Iterable
from typing import Any, Literal

ChangeCallback = Callable[[frozenset[Any]], None]
SelectAllState = bool | Literal["indeterminate"]


class _RowIdSet:
    def __init__(self, on_change: ChangeCallback | None = None) -> None:
        self._ids: set[Any] = set()
        self.on_change = on_change

    def __len__(self) -> int:
        return len(self._ids)

    def _replace(self, ids: set[Any]) -> bool:
        if ids == self._ids:
            return False
        self._ids = ids
        if self.on_change is not None:
            self.on_change(frozenset(ids))
        return True

    def _add(self, ids: Iterable[Any]) -> bool:
        return self._replace(self._ids | set(ids))

    def _remove(self, ids: Iterable[Any]) -> bool:
        return self._replace(self._ids - set(ids))

    def _toggle(self, row_id: Any) -> bool:
        if row_id in self._ids:
            self._remove([row_id])
            return False
        self._add([row_id])
        return True

    def _members(self, existing_ids: Collection[Any] | None) -> frozenset[Any]:
        if existing_ids is None:
            return frozenset(self._ids)
        return frozenset(row_id for row_id in self._ids if row_id in existing_ids)

    def _contains(self, row_id: Any, existing_ids: Collection[Any] | None) -> bool:
        if existing_ids is not None and row_id not in existing_ids:
            return False
        return row_id in self._ids

    def clear(self) -> bool:
        """Empty the set.  Returns ``True`` if anything changed."""
        return self._replace(set())


class SelectionTracker(_RowIdSet):
    """Selected row ids.

    ``select_all`` records exactly the ids it is given: whether that is the
    current page or the whole filtered result is the caller's decision.
    """

    def select(self, row_id: Any) -> bool:
        return self._add([row_id])

    def deselect(self, row_id: Any) -> bool:
        return self._remove([row_id])

    def toggle(self, row_id: Any) -> bool:
        """Flip one row.  Returns the new selected state."""
        return self._toggle(row_id)

    def select_all(self, row_ids: Iterable[Any]) -> bool:
        return self._add(row_ids)

    def deselect_all(self, row_ids: Iterable[Any]) -> bool:
        return self._remove(row_ids)

    def is_selected(self, row_id: Any, existing_ids: Collection[Any] | None = None) -> bool:
        return self._contains(row_id, existing_ids)

    def selected(self, existing_ids: Collection[Any] | None = None) -> frozenset[Any]:
        return self._members(existing_ids)

    def select_all_state(self, visible_ids: Iterable[Any]) -> SelectAllState:
        """Header checkbox state for *visible_ids*: all, none or ``"indeterminate"``."""
        visible = list(visible_ids)
        chosen = sum(1 for row_id in visible if row_id in self._ids)
        if chosen == 0:
            return False
        if chosen == len(visible):
            return True
        return "indeterminate"


class ExpansionTracker(_RowIdSet):
    """Expanded row ids.

    Whether a row *may* expand is a data-dependent predicate evaluated by
    the caller; the tracker only reports rows it was asked to expand.
    """

    def expand(self, row_id: Any) -> bool:
        return self._add([row_id])

    def collapse(self, row_id: Any) -> bool:
        return self._remove([row_id])

    def toggle(self, row_id: Any) -> bool:
        """Flip one row.  Returns the new expanded state."""
        return self._toggle(row_id)

    def expand_all(self, row_ids: Iterable[Any]) -> bool:
        return self._add(row_ids)

    def collapse_all(self, row_ids: Iterable[Any]) -> bool:
        return self._remove(row_ids)

    def is_expanded(self, row_id: Any, existing_ids: Collection[Any] | None = None) -> bool:
        return self._contains(row_id, existing_ids)

    def expanded(self, existing_ids: Collection[Any] | None = None) -> frozenset[Any]:
        return self._members(existing_ids)
