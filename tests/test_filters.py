import pytest
from pydantic import ValidationError

from datagrid_engine.filters import (
    compare_text,
    matches,
    matches_all,
    remove_filter,
    update_filter,
    upsert_filter,
)
from datagrid_engine.models import ColumnDefinition, FilterRule

ROW = {
    "id": 7,
    "name": "Laptop Pro",
    "owner": {"label": "Ada Lovelace", "imageUrl": "https://example.invalid/ada.png"},
    "tags": [{"text": "New"}, {"text": "Sale"}],
}


@pytest.mark.parametrize(
    ("operator", "value", "expected"),
    [
        ("equals", "laptop pro", True),
        ("equals", "laptop", False),
        ("contains", "TOP", True),
        ("startsWith", "lap", True),
        ("startsWith", "pro", False),
        ("endsWith", "PRO", True),
    ],
)
def test_compare_text(operator, value, expected):
    assert compare_text("Laptop Pro", operator, value) is expected


def test_compare_text_rejects_unknown_operator():
    with pytest.raises(ValueError, match="Unknown filter operator"):
        compare_text("x", "like", "x")


def test_rule_rejects_unknown_operator():
    with pytest.raises(ValidationError):
        FilterRule(field="name", operator="like", value="x")


@pytest.mark.parametrize("value", ["", "   "])
def test_inert_rule_matches_everything(value):
    rule = FilterRule(field="name", operator="equals", value=value)

    assert rule.is_inert
    assert matches(ROW, rule)
    assert matches({}, rule)


def test_structured_cell_uses_column_text():
    owner = ColumnDefinition(field="owner", type="avatar")

    assert matches(ROW, FilterRule(field="owner", operator="equals", value="ada lovelace"), owner)
    assert not matches(ROW, FilterRule(field="owner", value="example.invalid"), owner)


def test_list_of_tags_matches_any_tag_text():
    tags = ColumnDefinition(field="tags", type="tag")

    assert matches(ROW, FilterRule(field="tags", value="sale"), tags)


def test_missing_field_resolves_to_empty_text():
    assert not matches(ROW, FilterRule(field="missing", value="x"))


def test_matches_all_ands_rules():
    rules = [
        FilterRule(field="name", value="laptop"),
        FilterRule(field="owner", operator="startsWith", value="ada"),
    ]
    columns = {"owner": ColumnDefinition(field="owner", type="avatar")}

    assert matches_all(ROW, rules, columns)
    assert not matches_all(ROW, [*rules, FilterRule(field="name", value="desk")], columns)
    assert matches_all(ROW, [])


# ---------------------------------------------------------------------------
# Rule-list editing
# ---------------------------------------------------------------------------

def test_upsert_appends_a_rule_for_a_new_field():
    rules = upsert_filter((), "name", "lap")

    assert len(rules) == 1
    assert (rules[0].field, rules[0].operator, rules[0].value) == ("name", "contains", "lap")


def test_upsert_replaces_in_place_and_keeps_the_id():
    first = FilterRule(field="name", value="lap")
    second = FilterRule(field="category", value="elec")

    rules = upsert_filter((first, second), "name", "desk", "startsWith")

    assert [rule.field for rule in rules] == ["name", "category"]
    assert rules[0].id == first.id
    assert (rules[0].operator, rules[0].value) == ("startsWith", "desk")


def test_upsert_with_empty_value_removes_the_rule():
    first = FilterRule(field="name", value="lap")
    second = FilterRule(field="category", value="elec")

    assert upsert_filter((first, second), "name", "  ") == (second,)
    assert upsert_filter((second,), "name", "") == (second,)


def test_update_and_remove_by_id():
    first = FilterRule(field="name", value="lap")
    second = FilterRule(field="category", value="elec")

    updated = update_filter((first, second), second.id, value="furn")
    assert updated[0] is first
    assert updated[1].value == "furn"
    assert updated[1].id == second.id

    assert remove_filter(updated, first.id) == (updated[1],)
    assert remove_filter(updated, "unknown") == updated


def test_update_validates_changes():
    rule = FilterRule(field="name", value="lap")

    with pytest.raises(ValidationError):
        update_filter((rule,), rule.id, operator="regex")
