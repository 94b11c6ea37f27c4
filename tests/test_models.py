import pytest
from pydantic import ValidationError

from datagrid_engine.models import (
    ColumnDefinition,
    EditSession,
    FilterRule,
    QueryDescriptor,
    SortSpec,
    ViewResult,
)


def test_descriptor_defaults():
    descriptor = QueryDescriptor()

    assert descriptor.search_text == ""
    assert descriptor.filters == ()
    assert descriptor.sort == SortSpec(field=None, direction="none")
    assert (descriptor.page, descriptor.page_size, descriptor.offset) == (1, 10, 0)


def test_descriptor_is_immutable():
    descriptor = QueryDescriptor()

    with pytest.raises(ValidationError):
        descriptor.page = 2


def test_replace_returns_a_validated_copy():
    descriptor = QueryDescriptor(page=3, page_size=20)

    changed = descriptor.replace(search_text="lap", page=1)

    assert descriptor.page == 3
    assert (changed.search_text, changed.page, changed.page_size) == ("lap", 1, 20)
    with pytest.raises(ValidationError):
        descriptor.replace(page_size=0)


def test_descriptor_accepts_camel_case_input():
    descriptor = QueryDescriptor.model_validate(
        {"searchText": "chair", "pageSize": 25, "sort": {"field": "price", "direction": "desc"}}
    )

    assert descriptor.search_text == "chair"
    assert descriptor.page_size == 25
    assert descriptor.sort.is_active


def test_to_wire_uses_camel_case():
    rule = FilterRule(id="r1", field="name", operator="startsWith", value="lap")
    descriptor = QueryDescriptor(filters=(rule,), sort=SortSpec(field="price", direction="asc"), page=2)

    assert descriptor.to_wire() == {
        "searchText": "",
        "filters": [{"id": "r1", "field": "name", "operator": "startsWith", "value": "lap"}],
        "sort": {"field": "price", "direction": "asc"},
        "page": 2,
        "pageSize": 10,
    }


def test_rules_get_unique_ids():
    assert FilterRule(field="a").id != FilterRule(field="a").id


def test_active_filters_skip_inert_rules():
    live = FilterRule(field="a", value="x")
    descriptor = QueryDescriptor(filters=(FilterRule(field="b", value=" "), live))

    assert descriptor.active_filters == (live,)


def test_sort_without_field_is_inactive():
    assert not SortSpec(direction="asc").is_active
    assert not SortSpec(field="price", direction="none").is_active


def test_column_label_and_width_defaults():
    column = ColumnDefinition(field="unit_price", type="number")

    assert column.label == "Unit Price"
    assert column.width_bounds() == (80, 120)
    assert ColumnDefinition(field="x", header="Owner", type="avatar", min_width=250).width_bounds() == (250, 300)


def test_column_callables_are_not_serialised():
    column = ColumnDefinition(field="name", text_getter=str.upper, can_hide=False)

    dumped = column.model_dump(by_alias=True)

    assert "textGetter" not in dumped
    assert dumped["canHide"] is False
    assert column.display_text("abc") == "ABC"


def test_column_custom_validator_runs_after_type_check():
    column = ColumnDefinition(
        field="price",
        type="number",
        validator=lambda value: "Must be positive" if value <= 0 else None,
    )

    assert column.validate_value("abc") == "Expected a number"
    assert column.validate_value(-1) == "Must be positive"
    assert column.validate_value(10) is None


def test_view_page_count():
    assert ViewResult().page_count(10) == 1
    assert ViewResult(total_matched=5).page_count(2) == 3
    assert ViewResult(total_matched=4).page_count(2) == 2


def test_edit_session_values_overlay_pending():
    session = EditSession(row_id=1, original={"id": 1, "name": "a", "price": 1}, pending={"price": 2})

    assert session.values == {"id": 1, "name": "a", "price": 2}
