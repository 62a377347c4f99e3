"""Tests for INSERT statement generation."""

import pytest

from cherrypick.config import RootSelector
from cherrypick.core.catalog import SchemaCatalog
from cherrypick.core.graph import CherryPickGraph, GraphBuilder
from cherrypick.exceptions import CyclicDependencyError
from cherrypick.models import (
    ColumnDescriptor,
    EdgeDirection,
    ForeignKeyRelation,
    RelationEdge,
    RowKey,
    RowNode,
    TableSchema,
)
from cherrypick.output.sql import InsertStatementGenerator, quote_identifier
from cherrypick.values import IntegerValue, decode


def build(gateway, table: str, value: str) -> CherryPickGraph:
    return GraphBuilder(SchemaCatalog(gateway), gateway).build(
        RootSelector(table=table, value=value)
    )


def insert_targets(statements: list[str]) -> list[str]:
    """'"public"."orders" (10' style prefix for each statement, to compare order."""
    result = []
    for stmt in statements:
        table = stmt.split(" ")[2]
        first_value = stmt.split("VALUES (")[1].split(",")[0].rstrip(");")
        result.append(f"{table}#{first_value}")
    return result


class TestQuoteIdentifier:
    def test_plain(self):
        assert quote_identifier("orders") == '"orders"'

    def test_embedded_quote(self):
        assert quote_identifier('we"ird') == '"we""ird"'


class TestOrdering:
    """Tests for dependency ordering of rows."""

    def test_referenced_rows_first(self, shop_gateway):
        graph = build(shop_gateway, "orders", "10")
        statements = InsertStatementGenerator().generate(graph)

        assert insert_targets(statements) == [
            '"public"."customers"#1',
            '"public"."orders"#10',
            '"public"."orders"#11',
            '"public"."products"#1',
            '"public"."order_items"#100',
            '"public"."products"#2',
            '"public"."order_items"#101',
            '"public"."customers"#2',
            '"public"."orders"#12',
            '"public"."order_items"#102',
        ]

    def test_every_edge_respected(self, shop_gateway):
        graph = build(shop_gateway, "products", "1")
        ordered = InsertStatementGenerator().order(graph)
        position = {node.key: i for i, node in enumerate(ordered)}

        assert len(ordered) == len(graph)
        for edge in graph.edges:
            assert position[edge.to_key] < position[edge.from_key]

    def test_deterministic(self, shop_gateway_factory):
        first = InsertStatementGenerator().generate(
            build(shop_gateway_factory(), "orders", "10")
        )
        second = InsertStatementGenerator().generate(
            build(shop_gateway_factory(), "orders", "10")
        )
        assert first == second

    def test_self_loop_imposes_no_constraint(self, categories_gateway):
        graph = build(categories_gateway, "categories", "5")
        statements = InsertStatementGenerator().generate(graph)

        assert statements == [
            'INSERT INTO "public"."categories" ("id", "name", "parent_id") VALUES (5, \'Loop\', 5);'
        ]

    def test_self_referencing_chain(self, categories_gateway):
        graph = build(categories_gateway, "categories", "3")
        statements = InsertStatementGenerator().generate(graph)

        assert insert_targets(statements) == [
            '"public"."categories"#1',
            '"public"."categories"#2',
            '"public"."categories"#3',
        ]

    def test_cycle_raises(self):
        table = TableSchema(
            schema="public",
            name="pairs",
            columns=(
                ColumnDescriptor("id", "integer", False),
                ColumnDescriptor("other_id", "integer", True),
            ),
            primary_key=("id",),
        )
        relation = ForeignKeyRelation(
            name="pairs_other_id_fkey",
            source_schema="public",
            source_table="pairs",
            source_columns=("other_id",),
            target_schema="public",
            target_table="pairs",
            target_columns=("id",),
        )
        keys = [RowKey("public", "pairs", (IntegerValue(i),)) for i in (1, 2)]
        graph = CherryPickGraph()
        for k, other in zip(keys, reversed(keys)):
            graph.add_node(
                RowNode(k, {"id": k.values[0], "other_id": other.values[0]}, table)
            )
        graph.add_edge(RelationEdge(keys[0], keys[1], relation, EdgeDirection.PARENT))
        graph.add_edge(RelationEdge(keys[1], keys[0], relation, EdgeDirection.PARENT))

        with pytest.raises(CyclicDependencyError) as exc_info:
            InsertStatementGenerator().generate(graph)

        assert exc_info.value.remaining == ["public.pairs#1", "public.pairs#2"]


class TestStatements:
    def test_statement_is_fully_literal(self, shop_gateway):
        graph = build(shop_gateway, "orders", "10")
        statements = InsertStatementGenerator().generate(graph)

        assert (
            'INSERT INTO "public"."orders" ("id", "customer_id", "code", "total") '
            "VALUES (10, 1, 'A-10', 19.99);"
        ) in statements
        assert (
            'INSERT INTO "public"."customers" ("id", "name", "email") '
            "VALUES (1, 'Alice', 'alice@example.com');"
        ) in statements

    def test_one_statement_per_row(self, shop_gateway):
        graph = build(shop_gateway, "orders", "10")
        assert len(InsertStatementGenerator().generate(graph)) == len(graph)

    def test_row_without_columns(self):
        table = TableSchema(schema="public", name="markers", columns=(), primary_key=())
        graph = CherryPickGraph()
        graph.add_node(RowNode(RowKey("public", "markers", ()), {}, table))

        assert InsertStatementGenerator().generate(graph) == [
            'INSERT INTO "public"."markers" DEFAULT VALUES;'
        ]


class TestRender:
    def test_header_and_transaction(self, shop_gateway):
        graph = build(shop_gateway, "orders", "10")
        output = InsertStatementGenerator().render(graph)
        lines = output.splitlines()

        assert lines[:3] == [
            "-- Generated by cherrypick",
            "-- Root: public.orders#10",
            "-- Rows: 10 from 4 table(s)",
        ]
        assert "BEGIN;" in lines
        assert output.endswith("COMMIT;\n")

    def test_without_transaction(self, shop_gateway):
        graph = build(shop_gateway, "orders", "10")
        output = InsertStatementGenerator(include_transaction=False).render(graph)

        assert "BEGIN;" not in output
        assert "COMMIT;" not in output

    def test_without_header(self, categories_gateway):
        graph = build(categories_gateway, "categories", "5")
        output = InsertStatementGenerator(include_header=False).render(graph)

        assert output == (
            "BEGIN;\n"
            "\n"
            'INSERT INTO "public"."categories" ("id", "name", "parent_id") VALUES (5, \'Loop\', 5);\n'
            "\n"
            "COMMIT;\n"
        )

    def test_render_is_byte_identical(self, shop_gateway_factory):
        graph = build(shop_gateway_factory(), "orders", "10")
        generator = InsertStatementGenerator()

        first = generator.render(graph)
        assert generator.render(graph) == first
        assert generator.render(build(shop_gateway_factory(), "orders", "10")) == first

    def test_server_text_literal_for_unmapped_types(self):
        table = TableSchema(
            schema="public",
            name="schedules",
            columns=(
                ColumnDescriptor("id", "integer", False),
                ColumnDescriptor("slots", "_int4", True),
                ColumnDescriptor("span", "interval", True),
            ),
            primary_key=("id",),
        )
        values = {
            "id": decode(1, "integer"),
            "slots": decode("{1,2}", "_int4"),
            "span": decode("1 day 02:00:00", "interval"),
        }
        graph = CherryPickGraph()
        graph.add_node(RowNode(RowKey("public", "schedules", (values["id"],)), values, table))

        assert InsertStatementGenerator().generate(graph) == [
            'INSERT INTO "public"."schedules" ("id", "slots", "span") VALUES '
            "(1, '{1,2}' /* unknown type: _int4 */, "
            "'1 day 02:00:00' /* unknown type: interval */);"
        ]
