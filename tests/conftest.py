"""Shared pytest fixtures for cherrypick tests."""

from decimal import Decimal
from typing import Any

import pytest

from cherrypick.adapters.base import QueryGateway, RawColumn, RawRow
from cherrypick.exceptions import SchemaNotFoundError
from cherrypick.models import ColumnDescriptor, ForeignKeyRelation, TableSchema


def fk(
    name: str,
    source: str,
    source_columns: tuple[str, ...],
    target: str,
    target_columns: tuple[str, ...],
    schema: str = "public",
) -> ForeignKeyRelation:
    """Shorthand for a foreign key between two tables of one schema."""
    return ForeignKeyRelation(
        name=name,
        source_schema=schema,
        source_table=source,
        source_columns=source_columns,
        target_schema=schema,
        target_table=target,
        target_columns=target_columns,
    )


def build_tables(
    columns: dict[str, list[tuple[str, str]]],
    primary_keys: dict[str, tuple[str, ...]],
    foreign_keys: list[ForeignKeyRelation],
    schema: str = "public",
) -> dict[tuple[str, str], TableSchema]:
    """
    Build TableSchemas with outgoing/incoming relations wired up.

    Args:
        columns: table -> [(column, declared type)]
        primary_keys: table -> primary key columns (missing means no PK)
        foreign_keys: relations, in the order they should be listed
    """
    tables = {}
    for name, cols in columns.items():
        pk = primary_keys.get(name, ())
        tables[(schema, name)] = TableSchema(
            schema=schema,
            name=name,
            columns=tuple(
                ColumnDescriptor(name=col, data_type=data_type, nullable=col not in pk)
                for col, data_type in cols
            ),
            primary_key=pk,
            outgoing=tuple(f for f in foreign_keys if f.source_table == name),
            incoming=tuple(f for f in foreign_keys if f.target_table == name),
        )
    return tables


def _matches(actual: Any, expected: Any) -> bool:
    # PostgreSQL coerces text parameters to the column type
    if actual is None:
        return False
    return actual == expected or str(actual) == str(expected)


class MockGateway(QueryGateway):
    """In-memory query gateway for testing without a real database."""

    def __init__(
        self,
        tables: dict[tuple[str, str], TableSchema],
        data: dict[tuple[str, str], list[dict[str, Any]]],
    ):
        self.tables = tables
        self.data = data
        self.calls: list[str] = []
        self.introspected: list[tuple[str, str]] = []
        self.fetches: list[tuple[str, str, list[tuple[str, Any]]]] = []
        self.fetch_errors: dict[tuple[str, str], Exception] = {}

    def connect(self, url: str) -> None:
        self.calls.append("connect")

    def close(self) -> None:
        self.calls.append("close")

    def introspect_table(self, schema: str, table: str) -> TableSchema:
        self.introspected.append((schema, table))
        if (schema, table) not in self.tables:
            raise SchemaNotFoundError(schema, table)
        return self.tables[(schema, table)]

    def fetch_rows(
        self,
        schema: str,
        table: str,
        filters: list[tuple[str, Any]],
    ) -> list[RawRow]:
        self.fetches.append((schema, table, list(filters)))
        if (schema, table) in self.fetch_errors:
            raise self.fetch_errors[(schema, table)]

        table_schema = self.tables[(schema, table)]
        types = {c.name: c.data_type for c in table_schema.columns}
        rows = []
        for row in self.data.get((schema, table), []):
            if all(_matches(row.get(col), value) for col, value in filters):
                rows.append({col: RawColumn(val, types[col]) for col, val in row.items()})
        return rows

    def begin_snapshot(self) -> None:
        self.calls.append("begin_snapshot")

    def end_snapshot(self) -> None:
        self.calls.append("end_snapshot")


@pytest.fixture
def shop_tables() -> dict[tuple[str, str], TableSchema]:
    """
    customers <- orders <- order_items -> products, plus audit_log (no PK).
    """
    return build_tables(
        columns={
            "customers": [("id", "integer"), ("name", "text"), ("email", "character varying")],
            "orders": [
                ("id", "integer"),
                ("customer_id", "integer"),
                ("code", "text"),
                ("total", "numeric"),
            ],
            "order_items": [
                ("id", "integer"),
                ("order_id", "integer"),
                ("product_id", "integer"),
                ("quantity", "integer"),
            ],
            "products": [("id", "integer"), ("name", "text")],
            "audit_log": [("customer_id", "integer"), ("message", "text")],
        },
        primary_keys={
            "customers": ("id",),
            "orders": ("id",),
            "order_items": ("id",),
            "products": ("id",),
        },
        foreign_keys=[
            fk("orders_customer_id_fkey", "orders", ("customer_id",), "customers", ("id",)),
            fk("order_items_order_id_fkey", "order_items", ("order_id",), "orders", ("id",)),
            fk(
                "order_items_product_id_fkey",
                "order_items",
                ("product_id",),
                "products",
                ("id",),
            ),
            fk("audit_log_customer_id_fkey", "audit_log", ("customer_id",), "customers", ("id",)),
        ],
    )


@pytest.fixture
def shop_data() -> dict[tuple[str, str], list[dict[str, Any]]]:
    return {
        ("public", "customers"): [
            {"id": 1, "name": "Alice", "email": "alice@example.com"},
            {"id": 2, "name": "Bob", "email": "bob@example.com"},
            {"id": 3, "name": "Carol", "email": "carol@example.com"},
        ],
        ("public", "orders"): [
            {"id": 10, "customer_id": 1, "code": "A-10", "total": Decimal("19.99")},
            {"id": 11, "customer_id": 1, "code": "A-11", "total": Decimal("5.00")},
            {"id": 12, "customer_id": 2, "code": "B-12", "total": Decimal("42.00")},
            {"id": 13, "customer_id": 3, "code": "C-13", "total": None},
        ],
        ("public", "order_items"): [
            {"id": 100, "order_id": 10, "product_id": 1, "quantity": 2},
            {"id": 101, "order_id": 10, "product_id": 2, "quantity": 1},
            {"id": 102, "order_id": 12, "product_id": 1, "quantity": 5},
        ],
        ("public", "products"): [
            {"id": 1, "name": "Widget"},
            {"id": 2, "name": "Gadget"},
        ],
        ("public", "audit_log"): [
            {"customer_id": 1, "message": "signed up"},
        ],
    }


@pytest.fixture
def shop_gateway(shop_tables, shop_data) -> MockGateway:
    return MockGateway(shop_tables, shop_data)


@pytest.fixture
def shop_gateway_factory(shop_tables, shop_data):
    """Fresh shop gateways, for tests that need more than one run."""
    return lambda: MockGateway(shop_tables, shop_data)


@pytest.fixture
def categories_gateway() -> MockGateway:
    """Self-referencing categories; category 5 is its own parent."""
    tables = build_tables(
        columns={
            "categories": [("id", "integer"), ("name", "text"), ("parent_id", "integer")],
        },
        primary_keys={"categories": ("id",)},
        foreign_keys=[
            fk("categories_parent_id_fkey", "categories", ("parent_id",), "categories", ("id",)),
        ],
    )
    data = {
        ("public", "categories"): [
            {"id": 1, "name": "Root", "parent_id": None},
            {"id": 2, "name": "Books", "parent_id": 1},
            {"id": 3, "name": "Fiction", "parent_id": 2},
            {"id": 5, "name": "Loop", "parent_id": 5},
        ],
    }
    return MockGateway(tables, data)


@pytest.fixture
def composite_gateway() -> MockGateway:
    """stock keyed by (warehouse_id, sku), referenced by reservations."""
    tables = build_tables(
        columns={
            "stock": [("warehouse_id", "integer"), ("sku", "text"), ("quantity", "integer")],
            "reservations": [("id", "integer"), ("warehouse_id", "integer"), ("sku", "text")],
        },
        primary_keys={"stock": ("warehouse_id", "sku"), "reservations": ("id",)},
        foreign_keys=[
            fk(
                "reservations_stock_fkey",
                "reservations",
                ("warehouse_id", "sku"),
                "stock",
                ("warehouse_id", "sku"),
            ),
        ],
    )
    data = {
        ("public", "stock"): [
            {"warehouse_id": 1, "sku": "W-1", "quantity": 7},
            {"warehouse_id": 2, "sku": "W-1", "quantity": 3},
        ],
        ("public", "reservations"): [
            {"id": 1, "warehouse_id": 1, "sku": "W-1"},
            {"id": 2, "warehouse_id": 1, "sku": "W-1"},
            {"id": 3, "warehouse_id": 2, "sku": None},
        ],
    }
    return MockGateway(tables, data)


@pytest.fixture
def users_gateway() -> MockGateway:
    """users <- orders, for node label tests."""
    tables = build_tables(
        columns={
            "users": [("id", "integer"), ("name", "text"), ("email", "text")],
            "orders": [("id", "integer"), ("user_id", "integer"), ("code", "text")],
        },
        primary_keys={"users": ("id",), "orders": ("id",)},
        foreign_keys=[
            fk("orders_user_id_fkey", "orders", ("user_id",), "users", ("id",)),
        ],
    )
    data = {
        ("public", "users"): [
            {"id": 1, "name": "Alice", "email": "alice@example.com"},
        ],
        ("public", "orders"): [
            {"id": 7, "user_id": 1, "code": "ORD-7"},
        ],
    }
    return MockGateway(tables, data)
