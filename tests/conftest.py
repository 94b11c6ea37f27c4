import pytest

from datagrid_engine.models import ColumnDefinition


def make_products() -> list[dict]:
    return [
        {
            "id": 1,
            "name": "Laptop Pro",
            "category": "Electronics",
            "price": 2499.99,
            "status": {"text": "Active", "color": "success"},
            "owner": {"label": "Ada Lovelace", "sublabel": "Admin"},
        },
        {
            "id": 2,
            "name": "Desk Chair",
            "category": "Furniture",
            "price": 1199.99,
            "status": {"text": "Inactive", "color": "default"},
            "owner": {"label": "Grace Hopper"},
        },
        {
            "id": 3,
            "name": "Monitor",
            "category": "Electronics",
            "price": 799.99,
            "status": {"text": "Active", "color": "success"},
            "owner": {"label": "Alan Turing", "sublabel": "Editor"},
        },
        {
            "id": 4,
            "name": "Laptop Air",
            "category": "Electronics",
            "price": 3999.99,
            "status": {"text": "Pending", "color": "warning"},
            "owner": {"label": "Ada Lovelace", "sublabel": "Admin"},
        },
        {
            "id": 5,
            "name": "Bookshelf",
            "category": "Furniture",
            "price": 599.99,
            "status": {"text": "Active", "color": "success"},
            "owner": {"label": "Linus Torvalds"},
        },
    ]


def make_columns() -> list[ColumnDefinition]:
    return [
        ColumnDefinition(field="name", header="Product", editable=True, can_hide=False),
        ColumnDefinition(field="category", header="Category", editable=True),
        ColumnDefinition(field="price", header="Price", type="number", editable=True),
        ColumnDefinition(field="status", header="Status", type="tag"),
        ColumnDefinition(field="owner", header="Owner", type="avatar"),
    ]


@pytest.fixture
def products() -> list[dict]:
    return make_products()


@pytest.fixture
def columns() -> list[ColumnDefinition]:
    return make_columns()
