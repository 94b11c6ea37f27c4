"""Literal (in-process) evaluation of filter rules, and rule-list editing.

:func:`matches` is the reference contract for a single rule.  The polars
pipeline in :mod:`datagrid_engine.evaluator` evaluates whole datasets with
the same text-resolution and comparison rules.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from datagrid_engine import cells
from datagrid_engine.models import ColumnDefinition, FilterOperator, FilterRule


def resolve_text(row: Mapping[str, Any], field: str, column: ColumnDefinition | None = None) -> str:
    """Return the canonical display text of ``row[field]``.

    Uses the column definition when one is given, otherwise the generic
    rule for untyped values.  A missing field resolves to ``""``.
    """
    value = row.get(field)
    if column is not None:
        return column.display_text(value)
    return cells.generic_text(value)


def compare_text(text: str, operator: str, value: str) -> bool:
    """Case-insensitive comparison of resolved *text* against a rule *value*."""
    haystack = text.lower()
    needle = value.lower()
    if operator == "equals":
        return haystack == needle
    if operator == "contains":
        return needle in haystack
    if operator == "startsWith":
        return haystack.startswith(needle)
    if operator == "endsWith":
        return haystack.endswith(needle)
    raise ValueError(f"Unknown filter operator: {operator!r}")


def matches(row: Mapping[str, Any], rule: FilterRule, column: ColumnDefinition | None = None) -> bool:
    """Return ``True`` if *row* satisfies *rule*.

    An inert rule (empty or whitespace value) matches every row, including
    under ``equals``.
    """
    if rule.is_inert:
        return True
    return compare_text(resolve_text(row, rule.field, column), rule.operator, rule.value)


def matches_all(
    row: Mapping[str, Any],
    rules: Iterable[FilterRule],
    columns: Mapping[str, ColumnDefinition] | None = None,
) -> bool:
    """AND-combine *rules*.  Every rule is evaluated; order never matters."""
    columns = columns or {}
    results = [matches(row, rule, columns.get(rule.field)) for rule in rules]
    return all(results)


# ---------------------------------------------------------------------------
# Rule-list editing
# ---------------------------------------------------------------------------

def upsert_filter(
    filters: Sequence[FilterRule],
    field: str,
    value: str,
    operator: FilterOperator = "contains",
) -> tuple[FilterRule, ...]:
    """Merge a per-column header filter into *filters*, keyed by ``field``.

    * Non-empty *value* and the field already has a rule -> replace it in
      place (keeps its id and position).
    * Non-empty *value* for a new field -> append a new rule.
    * Empty *value* -> remove the field's rule, if any.

    Returns:
        The new rule sequence.  *filters* is never mutated.
    """
    is_empty = not value.strip()
    merged: list[FilterRule] = []
    found = False
    for rule in filters:
        if rule.field != field or found:
            merged.append(rule)
            continue
        found = True
        if not is_empty:
            merged.append(rule.model_copy(update={"value": value, "operator": operator}))
    if not found and not is_empty:
        merged.append(FilterRule(field=field, operator=operator, value=value))
    return tuple(merged)


def update_filter(filters: Sequence[FilterRule], rule_id: str, **changes: Any) -> tuple[FilterRule, ...]:
    """Replace the rule with id *rule_id* by a validated copy with *changes*."""
    return tuple(
        FilterRule.model_validate({**rule.model_dump(), **changes}) if rule.id == rule_id else rule
        for rule in filters
    )


def remove_filter(filters: Sequence[FilterRule], rule_id: str) -> tuple[FilterRule, ...]:
    return tuple(rule for rule in filters if rule.id != rule_id)
