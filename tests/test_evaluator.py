import copy

import pytest
from pydantic import ValidationError

from datagrid_engine.evaluator import column_value_options, evaluate, matching_rows
from datagrid_engine.models import ColumnDefinition, FilterRule, QueryDescriptor, SortSpec


def _ids(view):
    return [row["id"] for row in view.rows]


# ---------------------------------------------------------------------------
# Sorting and pagination
# ---------------------------------------------------------------------------

def test_sort_ascending_first_page(products, columns):
    descriptor = QueryDescriptor(sort=SortSpec(field="price", direction="asc"), page=1, page_size=2)

    view = evaluate(products, descriptor, columns)

    assert [row["price"] for row in view.rows] == [599.99, 799.99]
    assert view.total_matched == 5
    assert view.is_loading is False


def test_numeric_sort_is_inferred_without_column_definitions(products):
    descriptor = QueryDescriptor(sort=SortSpec(field="price", direction="asc"), page_size=2)

    view = evaluate(products, descriptor)

    assert [row["price"] for row in view.rows] == [599.99, 799.99]


def test_sort_descending_second_page(products, columns):
    descriptor = QueryDescriptor(sort=SortSpec(field="price", direction="desc"), page=2, page_size=2)

    view = evaluate(products, descriptor, columns)

    assert [row["price"] for row in view.rows] == [1199.99, 799.99]


def test_numbers_do_not_sort_lexicographically():
    rows = [{"id": i, "qty": qty} for i, qty in enumerate([10, 9, 100, 1])]
    column = ColumnDefinition(field="qty", type="number")

    view = evaluate(rows, QueryDescriptor(sort=SortSpec(field="qty", direction="asc")), [column])

    assert [row["qty"] for row in view.rows] == [1, 9, 10, 100]


def test_sort_is_stable(products, columns):
    descriptor = QueryDescriptor(sort=SortSpec(field="category", direction="asc"))

    view = evaluate(products, descriptor, columns)

    assert _ids(view) == [1, 3, 4, 2, 5]


def test_sort_on_structured_cells_uses_display_text(products, columns):
    descriptor = QueryDescriptor(sort=SortSpec(field="owner", direction="asc"))

    view = evaluate(products, descriptor, columns)

    assert [row["owner"]["label"] for row in view.rows] == [
        "Ada Lovelace",
        "Ada Lovelace",
        "Alan Turing",
        "Grace Hopper",
        "Linus Torvalds",
    ]


@pytest.mark.parametrize("direction", ["asc", "desc"])
def test_missing_values_sort_last(direction):
    rows = [
        {"id": 1, "price": 5.0},
        {"id": 2},
        {"id": 3, "price": 1.0},
        {"id": 4, "price": None},
    ]
    descriptor = QueryDescriptor(sort=SortSpec(field="price", direction=direction))

    view = evaluate(rows, descriptor, [ColumnDefinition(field="price", type="number")])

    assert _ids(view)[2:] == [2, 4]


def test_date_column_sorts_chronologically():
    rows = [
        {"id": 1, "when": "2024-03-01"},
        {"id": 2, "when": {"date": "2023-12-31"}},
        {"id": 3, "when": "2024-01-15"},
    ]
    column = ColumnDefinition(field="when", type="date")

    view = evaluate(rows, QueryDescriptor(sort=SortSpec(field="when", direction="asc")), [column])

    assert _ids(view) == [2, 3, 1]


def test_page_past_the_end_is_empty(products):
    view = evaluate(products, QueryDescriptor(page=4, page_size=2))

    assert view.rows == ()
    assert view.total_matched == 5


def test_total_is_counted_before_pagination(products, columns):
    descriptor = QueryDescriptor(
        filters=(FilterRule(field="category", operator="equals", value="electronics"),),
        page_size=1,
    )

    view = evaluate(products, descriptor, columns)

    assert len(view.rows) == 1
    assert view.total_matched == 3


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

def test_search_is_case_insensitive_and_trimmed(products, columns):
    view = evaluate(products, QueryDescriptor(search_text="  LAPTOP "), columns)

    assert _ids(view) == [1, 4]
    assert view.total_matched == 2


def test_search_matches_structured_display_text(products, columns):
    view = evaluate(products, QueryDescriptor(search_text="grace"), columns)

    assert _ids(view) == [2]


def test_search_ignores_hidden_parts_of_structured_cells(products, columns):
    view = evaluate(products, QueryDescriptor(search_text="warning"), columns)

    assert view.total_matched == 0


def test_whitespace_search_matches_everything(products):
    view = evaluate(products, QueryDescriptor(search_text="   "))

    assert view.total_matched == 5


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def test_empty_equals_rule_is_inert(products):
    descriptor = QueryDescriptor(filters=(FilterRule(field="name", operator="equals", value=""),))

    view = evaluate(products, descriptor)

    assert view.total_matched == 5


@pytest.mark.parametrize(
    ("operator", "value", "expected"),
    [
        ("equals", "MONITOR", [3]),
        ("contains", "lap", [1, 4]),
        ("startsWith", "desk", [2]),
        ("endsWith", "PRO", [1]),
    ],
)
def test_filter_operators(products, columns, operator, value, expected):
    descriptor = QueryDescriptor(filters=(FilterRule(field="name", operator=operator, value=value),))

    assert _ids(evaluate(products, descriptor, columns)) == expected


def test_filter_on_tag_column_uses_tag_text(products, columns):
    descriptor = QueryDescriptor(filters=(FilterRule(field="status", operator="equals", value="active"),))

    assert _ids(evaluate(products, descriptor, columns)) == [1, 3, 5]


def test_filter_on_missing_field_matches_only_empty_text(products):
    descriptor = QueryDescriptor(filters=(FilterRule(field="nope", operator="contains", value="x"),))

    assert evaluate(products, descriptor).total_matched == 0


def test_filter_order_does_not_matter(products, columns):
    first = FilterRule(field="category", operator="equals", value="Electronics")
    second = FilterRule(field="name", operator="contains", value="laptop")

    forward = evaluate(products, QueryDescriptor(filters=(first, second)), columns)
    backward = evaluate(products, QueryDescriptor(filters=(second, first)), columns)

    assert _ids(forward) == _ids(backward) == [1, 4]


def test_search_and_filters_combine(products, columns):
    descriptor = QueryDescriptor(
        search_text="ada",
        filters=(FilterRule(field="status", operator="equals", value="pending"),),
    )

    assert _ids(evaluate(products, descriptor, columns)) == [4]


# ---------------------------------------------------------------------------
# Purity
# ---------------------------------------------------------------------------

def test_evaluate_is_idempotent_and_does_not_touch_input(products, columns):
    snapshot = copy.deepcopy(products)
    descriptor = QueryDescriptor(search_text="a", sort=SortSpec(field="name", direction="desc"))

    first = evaluate(products, descriptor, columns)
    second = evaluate(products, descriptor, columns)
    first.rows[0]["name"] = "changed"

    assert products == snapshot
    assert _ids(first) == _ids(second)


def test_malformed_descriptor_is_rejected(products):
    with pytest.raises(ValidationError):
        QueryDescriptor(page=0)
    with pytest.raises(TypeError):
        evaluate(products, {"page": 1})


def test_matching_rows_returns_every_match_in_order(products, columns):
    descriptor = QueryDescriptor(
        filters=(FilterRule(field="category", operator="equals", value="electronics"),),
        sort=SortSpec(field="price", direction="desc"),
        page_size=1,
    )

    rows = matching_rows(products, descriptor, columns)

    assert [row["id"] for row in rows] == [4, 1, 3]


# ---------------------------------------------------------------------------
# Value options
# ---------------------------------------------------------------------------

def test_value_options_are_distinct_and_sorted(products):
    assert column_value_options(products, "category") == ["Electronics", "Furniture"]


def test_value_options_dedupe_case_and_whitespace():
    rows = [{"c": "Red"}, {"c": "red "}, {"c": "Blue"}, {"c": "light  blue"}, {"c": "Light blue"}]

    assert column_value_options(rows, "c") == ["Blue", "light  blue", "Red"]


def test_value_options_put_numbers_first_in_numeric_order():
    rows = [{"c": "apple"}, {"c": 10}, {"c": 9}, {"c": None}]

    assert column_value_options(rows, "c") == ["9", "10", "apple"]


def test_value_options_split_multiselect_cells():
    rows = [
        {"tags": {"values": ["a", "b"], "labels": ["A", "B"]}},
        {"tags": {"values": ["b", "c"]}},
    ]
    column = ColumnDefinition(field="tags", type="multiselect")

    assert column_value_options(rows, "tags", column) == ["a", "b", "c"]


def test_value_options_give_up_above_max_unique():
    rows = [{"c": f"value {i}"} for i in range(20)]

    assert column_value_options(rows, "c", max_unique=10) is None
