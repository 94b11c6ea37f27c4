import polars as pl
import pytest
import typer
from typer.testing import CliRunner

from datagrid_engine.cli import _parse_filter, app

runner = CliRunner()


@pytest.fixture
def products_csv(tmp_path):
    path = tmp_path / "products.csv"
    pl.DataFrame(
        {
            "sku": ["A1", "B2", "C3", "D4", "E5"],
            "name": ["Laptop Pro", "Desk Chair", "Monitor", "Laptop Air", "Bookshelf"],
            "category": ["Electronics", "Furniture", "Electronics", "Electronics", "Furniture"],
            "price": [2499.99, 1199.99, 799.99, 3999.99, 599.99],
        }
    ).write_csv(path)
    return path


@pytest.mark.parametrize("remote", [False, True])
def test_query_prints_one_sorted_page(products_csv, remote):
    args = ["query", str(products_csv), "--sort", "price:asc", "--page-size", "2"]
    if remote:
        args.append("--remote")

    result = runner.invoke(app, args)

    assert result.exit_code == 0, result.output
    assert "Bookshelf" in result.output
    assert "Monitor" in result.output
    assert "Laptop Pro" not in result.output
    assert "Showing rows 1-2 of 5" in result.output


def test_query_with_filters_and_id_field(products_csv):
    result = runner.invoke(
        app,
        [
            "query",
            str(products_csv),
            "--id-field",
            "sku",
            "-f",
            "category:equals:electronics",
            "-f",
            "name:lap",
            "--page",
            "2",
            "--page-size",
            "1",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Laptop Air" in result.output
    assert "Showing rows 2-2 of 2" in result.output


def test_query_reports_bad_input(products_csv, tmp_path):
    missing = runner.invoke(app, ["query", str(tmp_path / "missing.csv")])
    assert missing.exit_code == 1
    assert "file not found" in missing.output.lower()

    unknown = runner.invoke(app, ["query", str(products_csv), "-f", "colour:red"])
    assert unknown.exit_code == 1

    malformed = runner.invoke(app, ["query", str(products_csv), "-f", "name"])
    assert malformed.exit_code != 0


def test_values_lists_distinct_options(products_csv):
    result = runner.invoke(app, ["values", str(products_csv), "category"])

    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == ["Electronics", "Furniture"]


def test_sql_prints_the_statement():
    result = runner.invoke(
        app,
        ["sql", "--search", "lap", "-s", "name", "--sort", "price:desc", "--page", "2", "--table", "products"],
    )

    assert result.exit_code == 0, result.output
    assert "FROM products" in result.output
    assert 'ORDER BY "price" DESC NULLS LAST' in result.output
    assert "LIMIT 10 OFFSET 10;" in result.output


@pytest.mark.parametrize(
    ("text", "field", "operator", "value"),
    [
        ("name:lap", "name", "contains", "lap"),
        ("when:12:30", "when", "contains", "12:30"),
        ("name:like:x", "name", "contains", "like:x"),
        ("category:equals:a:b", "category", "equals", "a:b"),
    ],
)
def test_filter_values_may_contain_colons(text, field, operator, value):
    rule = _parse_filter(text)

    assert (rule.field, rule.operator, rule.value) == (field, operator, value)


@pytest.mark.parametrize("text", ["name", ":lap"])
def test_filter_without_a_field_is_rejected(text):
    with pytest.raises(typer.BadParameter):
        _parse_filter(text)
