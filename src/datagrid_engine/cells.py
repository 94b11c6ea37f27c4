"""Per-column-type handling of cell values.

Structured cells (an avatar with a label and an image, a tag with text and
a colour, ...) are reduced to one canonical display text and one ordering
key per column type.  Search, filtering, value options and sorting all go
through these helpers so the mechanisms agree with each other.
"""

import math
from collections.abc import Mapping, Sequence
from datetime import date, datetime, time
from typing import Any, Literal

ColumnType = Literal[
    "text",
    "number",
    "date",
    "avatar",
    "tag",
    "dropdown",
    "multiselect",
    "slider",
    "custom",
]

NUMERIC_TYPES: frozenset[str] = frozenset({"number", "slider"})

# (min_width, max_width) in pixels when a column does not set its own.
_TYPE_WIDTH_DEFAULTS: dict[str, tuple[int, int]] = {
    "avatar": (200, 300),
    "tag": (100, 150),
    "dropdown": (140, 200),
    "multiselect": (150, 220),
    "date": (120, 160),
    "number": (80, 120),
    "slider": (80, 120),
    "text": (120, 250),
    "custom": (120, 250),
}


# ---------------------------------------------------------------------------
# Canonical display text
# ---------------------------------------------------------------------------

def generic_text(value: Any) -> str:
    """Text for a value whose column type is unknown."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        for key in ("label", "text", "value", "name", "title"):
            if key in value and value[key] is not None:
                return str(value[key])
        return str(value)
    if isinstance(value, (list, tuple)):
        return ", ".join(generic_text(item) for item in value)
    return str(value)


def _avatar_text(value: Any) -> str:
    if isinstance(value, Mapping):
        return generic_text(value.get("label"))
    return generic_text(value)


def _tag_text(value: Any) -> str:
    if isinstance(value, Mapping):
        return generic_text(value.get("text"))
    if isinstance(value, (list, tuple)):
        return ", ".join(_tag_text(item) for item in value)
    return generic_text(value)


def _dropdown_text(value: Any) -> str:
    if isinstance(value, Mapping) and "selectedValue" in value:
        selected = value.get("selectedValue")
        for option in value.get("options") or []:
            if isinstance(option, Mapping) and option.get("value") == selected:
                return generic_text(option.get("label"))
        return generic_text(selected)
    return generic_text(value)


def _multiselect_text(value: Any) -> str:
    if isinstance(value, Mapping):
        items = value.get("labels") or value.get("values") or []
        return ", ".join(generic_text(item) for item in items)
    return generic_text(value)


def _date_text(value: Any) -> str:
    if isinstance(value, Mapping):
        return generic_text(value.get("date"))
    return generic_text(value)


_TEXT_EXTRACTORS = {
    "avatar": _avatar_text,
    "tag": _tag_text,
    "dropdown": _dropdown_text,
    "multiselect": _multiselect_text,
    "date": _date_text,
}


def display_text(column_type: str, value: Any) -> str:
    """Return the canonical display text of *value* for a column of *column_type*.

    Examples:
        ``display_text("avatar", {"label": "Ada", "imageUrl": "..."})`` -> ``"Ada"``
        ``display_text("tag", {"text": "Active", "color": "success"})`` -> ``"Active"``
        ``display_text("number", 2499.99)`` -> ``"2499.99"``
    """
    extractor = _TEXT_EXTRACTORS.get(column_type, generic_text)
    return extractor(value)


# ---------------------------------------------------------------------------
# Ordering keys
# ---------------------------------------------------------------------------

def coerce_number(value: Any) -> float | None:
    """Coerce *value* to a finite float, or ``None`` if it is not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            result = float(stripped)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(result):
        return None
    return result


def coerce_timestamp(value: Any) -> float | None:
    """Coerce a date-like value to a POSIX timestamp, or ``None``."""
    if isinstance(value, Mapping):
        value = value.get("date")
    if isinstance(value, datetime):
        return value.timestamp()
    if isinstance(value, date):
        return datetime.combine(value, time()).timestamp()
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip()).timestamp()
        except ValueError:
            return None
    return None


def sort_key(column_type: str, value: Any) -> float | str | None:
    """Return the ordering key of *value* for a column of *column_type*.

    Numeric and date columns order numerically (``float``); every other
    type orders by its casefolded display text.  ``None`` means "missing"
    and is always placed last by the evaluator.
    """
    if column_type in NUMERIC_TYPES:
        return coerce_number(value)
    if column_type == "date":
        return coerce_timestamp(value)
    if value is None:
        return None
    return display_text(column_type, value).casefold()


def is_numeric_column(values: Sequence[Any]) -> bool:
    """Infer numeric ordering for a field without a column definition."""
    present = [v for v in values if v is not None]
    return bool(present) and all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in present
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _is_real_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not (
        isinstance(value, float) and math.isnan(value)
    )


def _is_date_like(value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    if isinstance(value, str):
        try:
            datetime.fromisoformat(value.strip())
        except ValueError:
            return False
        return True
    if isinstance(value, Mapping) and "date" in value:
        return _is_date_like(value["date"])
    return False


def validate_value(column_type: str, value: Any) -> str | None:
    """Check *value* against the declared *column_type*.

    Returns:
        ``None`` when the value is acceptable, otherwise an error message.
    """
    if column_type == "custom":
        return None
    if value is None:
        return "A value is required"

    if column_type in NUMERIC_TYPES:
        return None if _is_real_number(value) else "Expected a number"
    if column_type == "text":
        return None if isinstance(value, str) or _is_real_number(value) else "Expected text"
    if column_type == "avatar":
        if isinstance(value, Mapping) and isinstance(value.get("label"), str):
            return None
        return "Expected an avatar with a text label"
    if column_type == "tag":
        if isinstance(value, Mapping) and isinstance(value.get("text"), str):
            return None
        return "Expected a tag with text"
    if column_type == "dropdown":
        if isinstance(value, str) or (isinstance(value, Mapping) and "selectedValue" in value):
            return None
        return "Expected a dropdown selection"
    if column_type == "multiselect":
        if isinstance(value, Mapping):
            value = value.get("values")
        if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            return None
        return "Expected a list of values"
    if column_type == "date":
        return None if _is_date_like(value) else "Expected a date"
    return None


def default_width_bounds(column_type: str) -> tuple[int, int]:
    """Default ``(min_width, max_width)`` for a column type."""
    return _TYPE_WIDTH_DEFAULTS.get(column_type, (120, 200))
