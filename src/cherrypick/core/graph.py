from collections import deque
from collections.abc import Iterator
from typing import Any

from cherrypick.adapters.base import QueryGateway, RawRow
from cherrypick.config import RootSelector
from cherrypick.core.catalog import SchemaCatalog
from cherrypick.exceptions import ColumnNotFoundError, MissingPrimaryKeyError, RowNotFoundError
from cherrypick.logging import get_logger
from cherrypick.models import (
    EdgeDirection,
    ForeignKeyRelation,
    RelationEdge,
    RowKey,
    RowNode,
    TableSchema,
)
from cherrypick.values import NULL, TypedValue, decode

logger = get_logger(__name__)


class CherryPickGraph:
    """
    Rows and the foreign-key edges between them.

    Nodes are kept in discovery order. Every edge's endpoints are nodes of
    the graph, and no two edges share the same (from, to, constraint).
    """

    def __init__(self):
        self._nodes: dict[RowKey, RowNode] = {}
        self._edges: list[RelationEdge] = []
        self._edge_keys: set[tuple[RowKey, RowKey, str]] = set()
        self._roots: list[RowKey] = []

    @property
    def nodes(self) -> list[RowNode]:
        """All rows in discovery order."""
        return list(self._nodes.values())

    @property
    def edges(self) -> list[RelationEdge]:
        """All edges in discovery order."""
        return list(self._edges)

    @property
    def roots(self) -> list[RowKey]:
        return list(self._roots)

    def add_node(self, node: RowNode) -> bool:
        """
        Add a row if its key is not present yet.

        Returns:
            True if the row was new, False if a row with the same key exists
        """
        if node.key in self._nodes:
            return False
        self._nodes[node.key] = node
        return True

    def add_root(self, key: RowKey) -> None:
        if key not in self._nodes:
            raise ValueError(f"Root {key} is not a node of the graph")
        if key not in self._roots:
            self._roots.append(key)

    def add_edge(self, edge: RelationEdge) -> bool:
        """
        Add an edge unless an equal (from, to, constraint) edge exists.

        Returns:
            True if the edge was added

        Raises:
            ValueError: If either endpoint is not a node of the graph
        """
        for endpoint in (edge.from_key, edge.to_key):
            if endpoint not in self._nodes:
                raise ValueError(f"Edge endpoint {endpoint} is not a node of the graph")

        if edge.dedup_key in self._edge_keys:
            return False
        self._edge_keys.add(edge.dedup_key)
        self._edges.append(edge)
        return True

    def get_node(self, key: RowKey) -> RowNode | None:
        return self._nodes.get(key)

    def is_root(self, key: RowKey) -> bool:
        return key in self._roots

    def __contains__(self, key: object) -> bool:
        return key in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[RowNode]:
        return iter(self._nodes.values())


def build_row_node(raw: RawRow, table: TableSchema) -> RowNode:
    """Decode a raw row into a RowNode keyed by the table's primary key."""
    values: dict[str, TypedValue] = {}
    for column in table.get_column_names():
        if column in raw:
            raw_column = raw[column]
            values[column] = decode(raw_column.value, raw_column.declared_type)
    # Columns added after the table was introspected
    for column, raw_column in raw.items():
        if column not in values:
            values[column] = decode(raw_column.value, raw_column.declared_type)

    key = RowKey(
        schema=table.schema,
        table=table.name,
        values=tuple(values.get(pk, NULL) for pk in table.primary_key),
    )
    return RowNode(key=key, values=values, table=table)


class GraphBuilder:
    """
    Discovers the full dependency closure of a root row.

    Uses BFS starting from the root row(s). Expanding a row fetches its
    parents (rows its foreign keys reference) and its children (rows whose
    foreign keys reference it). Each row is expanded at most once; table-level
    cycles are normal and only row-level revisits are suppressed. There is no
    depth limit, traversal ends when no unexpanded rows remain.
    """

    def __init__(self, catalog: SchemaCatalog, gateway: QueryGateway):
        self.catalog = catalog
        self.gateway = gateway
        self.fetch_count = 0
        self._skipped_tables: set[tuple[str, str]] = set()

    def build(self, selector: RootSelector) -> CherryPickGraph:
        """
        Build the graph around the rows selected by a root selector.

        Every row matching the selector becomes a root of the same graph.

        Raises:
            SchemaNotFoundError: If the root table does not exist
            ColumnNotFoundError: If the selector column is not in the root table
            MissingPrimaryKeyError: If the root table has no primary key
            RowNotFoundError: If no row matches the selector
            FetchError: If any fetch fails; no partial graph is returned
        """
        logger.debug(
            "Starting graph build",
            schema=selector.schema,
            table=selector.table,
            column=selector.column,
            value=selector.value,
        )

        root_table = self.catalog.get_schema(selector.schema, selector.table)
        if not root_table.has_column(selector.column):
            raise ColumnNotFoundError(
                root_table.qualified_name, selector.column, root_table.get_column_names()
            )
        if not root_table.primary_key:
            raise MissingPrimaryKeyError(selector.schema, selector.table)

        raw_rows = self._fetch(root_table, [(selector.column, selector.value)])
        if not raw_rows:
            raise RowNotFoundError(selector.schema, selector.table, selector.column, selector.value)

        if len(raw_rows) > 1:
            logger.info(
                "Root selector matched multiple rows, each becomes a root",
                table=root_table.qualified_name,
                match_count=len(raw_rows),
            )

        graph = CherryPickGraph()
        queue: deque[RowNode] = deque()

        for raw in raw_rows:
            node = build_row_node(raw, root_table)
            self._visit(node, graph, queue)
            graph.add_root(node.key)

        while queue:
            node = queue.popleft()
            self._expand(node, graph, queue)

        logger.info(
            "Graph build complete",
            rows=len(graph),
            edges=len(graph.edges),
            tables=len({node.key.table_identity for node in graph}),
            fetches=self.fetch_count,
        )

        return graph

    def _visit(self, node: RowNode, graph: CherryPickGraph, queue: deque[RowNode]) -> RowKey:
        if graph.add_node(node):
            queue.append(node)
        return node.key

    def _expand(self, node: RowNode, graph: CherryPickGraph, queue: deque[RowNode]) -> None:
        logger.debug("Expanding row", row=str(node.key))

        for fk in node.table.outgoing:
            self._expand_parent(node, fk, graph, queue)

        for fk in node.table.incoming:
            self._expand_children(node, fk, graph, queue)

    def _expand_parent(
        self,
        node: RowNode,
        fk: ForeignKeyRelation,
        graph: CherryPickGraph,
        queue: deque[RowNode],
    ) -> None:
        """Follow a foreign key held by this row to the row it references."""
        fk_values = self._non_null_values(node, fk.source_columns)
        if fk_values is None:
            return

        parent_table = self._related_table(fk.target_schema, fk.target_table, fk)
        if parent_table is None:
            return

        known = self._known_key(parent_table, fk.target_columns, fk_values, graph)
        if known is not None:
            graph.add_edge(RelationEdge(node.key, known, fk, EdgeDirection.PARENT))
            return

        filters = [(col, value.to_param()) for col, value in zip(fk.target_columns, fk_values)]
        for raw in self._fetch(parent_table, filters):
            parent_key = self._visit(build_row_node(raw, parent_table), graph, queue)
            graph.add_edge(RelationEdge(node.key, parent_key, fk, EdgeDirection.PARENT))

    def _expand_children(
        self,
        node: RowNode,
        fk: ForeignKeyRelation,
        graph: CherryPickGraph,
        queue: deque[RowNode],
    ) -> None:
        """Follow a foreign key pointing at this row back to the rows that hold it."""
        referenced_values = self._non_null_values(node, fk.target_columns)
        if referenced_values is None:
            return

        child_table = self._related_table(fk.source_schema, fk.source_table, fk)
        if child_table is None:
            return

        filters = [
            (col, value.to_param()) for col, value in zip(fk.source_columns, referenced_values)
        ]
        for raw in self._fetch(child_table, filters):
            child_key = self._visit(build_row_node(raw, child_table), graph, queue)
            graph.add_edge(RelationEdge(child_key, node.key, fk, EdgeDirection.CHILD))

    def _non_null_values(
        self, node: RowNode, columns: tuple[str, ...]
    ) -> list[TypedValue] | None:
        """Values of the given columns, or None if any is NULL (nothing to follow)."""
        values = []
        for column in columns:
            value = node.get(column)
            if value is None or value.is_null:
                return None
            values.append(value)
        return values

    def _known_key(
        self,
        table: TableSchema,
        columns: tuple[str, ...],
        values: list[TypedValue],
        graph: CherryPickGraph,
    ) -> RowKey | None:
        """
        Key of an already discovered row, when the FK targets the table's primary key.

        Lets parents that are already in the graph be linked without
        fetching them again.
        """
        if set(columns) != set(table.primary_key) or len(columns) != len(table.primary_key):
            return None
        by_column = dict(zip(columns, values))
        key = RowKey(
            schema=table.schema,
            table=table.name,
            values=tuple(by_column[pk] for pk in table.primary_key),
        )
        return key if key in graph else None

    def _related_table(
        self, schema: str, table: str, fk: ForeignKeyRelation
    ) -> TableSchema | None:
        """Structure of a related table, or None if its rows cannot be keyed."""
        related = self.catalog.get_schema(schema, table)
        if related.primary_key:
            return related

        if (schema, table) not in self._skipped_tables:
            self._skipped_tables.add((schema, table))
            logger.warning(
                "Skipping related table without primary key",
                table=f"{schema}.{table}",
                fk=fk.name,
            )
        return None

    def _fetch(self, table: TableSchema, filters: list[tuple[str, Any]]) -> list[RawRow]:
        self.fetch_count += 1
        rows = self.gateway.fetch_rows(table.schema, table.name, filters)
        logger.debug(
            "Fetched rows",
            table=table.qualified_name,
            filters=", ".join(f"{col}={val}" for col, val in filters),
            row_count=len(rows),
        )
        return rows
