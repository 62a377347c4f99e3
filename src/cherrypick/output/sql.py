import heapq
from typing import TYPE_CHECKING

from cherrypick.exceptions import CyclicDependencyError
from cherrypick.logging import get_logger
from cherrypick.models import RowKey, RowNode
from cherrypick.values import render_sql_literal

if TYPE_CHECKING:
    from cherrypick.core.graph import CherryPickGraph

logger = get_logger(__name__)


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


class InsertStatementGenerator:
    """
    Serializes a cherry-pick graph as INSERT statements.

    Statements are ordered so every referenced row is inserted before the
    rows that reference it (Kahn's algorithm over the graph's edges). Among
    rows that are ready at the same time, the one discovered first goes
    first, so the same graph always produces the same output.

    Self-referencing edges (a row pointing at itself) impose no ordering.
    """

    def __init__(self, include_transaction: bool = True, include_header: bool = True):
        self.include_transaction = include_transaction
        self.include_header = include_header

    def order(self, graph: "CherryPickGraph") -> list[RowNode]:
        """
        Rows in dependency order.

        Raises:
            CyclicDependencyError: If some rows could not be ordered
        """
        nodes = graph.nodes
        position = {node.key: i for i, node in enumerate(nodes)}

        # referenced row -> rows waiting on it
        dependents: dict[RowKey, list[RowKey]] = {node.key: [] for node in nodes}
        in_degree: dict[RowKey, int] = {node.key: 0 for node in nodes}
        seen: set[tuple[RowKey, RowKey]] = set()

        for edge in graph.edges:
            if edge.is_self_loop:
                continue
            # Several constraints between the same two rows count once
            pair = (edge.from_key, edge.to_key)
            if pair in seen:
                continue
            seen.add(pair)
            dependents[edge.to_key].append(edge.from_key)
            in_degree[edge.from_key] += 1

        ready = [position[key] for key, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)

        ordered: list[RowNode] = []
        while ready:
            node = nodes[heapq.heappop(ready)]
            ordered.append(node)
            for dependent in dependents[node.key]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, position[dependent])

        if len(ordered) != len(nodes):
            remaining = [str(key) for key, degree in in_degree.items() if degree > 0]
            logger.error("Rows could not be ordered", remaining=len(remaining))
            raise CyclicDependencyError(remaining)

        return ordered

    def generate(self, graph: "CherryPickGraph") -> list[str]:
        """
        One complete INSERT statement per row, in dependency order.

        Raises:
            CyclicDependencyError: If some rows could not be ordered
        """
        return [self._insert_statement(node) for node in self.order(graph)]

    def render(self, graph: "CherryPickGraph") -> str:
        """Full SQL script: optional header, optional BEGIN/COMMIT, statements."""
        statements = self.generate(graph)
        lines: list[str] = []

        if self.include_header:
            lines.extend(self._header(graph, len(statements)))
            lines.append("")

        if self.include_transaction:
            lines.append("BEGIN;")
            lines.append("")

        lines.extend(statements)

        if self.include_transaction:
            lines.append("")
            lines.append("COMMIT;")

        return "\n".join(lines) + "\n"

    def _insert_statement(self, node: RowNode) -> str:
        table = f"{quote_identifier(node.key.schema)}.{quote_identifier(node.key.table)}"
        if not node.values:
            return f"INSERT INTO {table} DEFAULT VALUES;"

        columns = ", ".join(quote_identifier(col) for col in node.values)
        values = ", ".join(render_sql_literal(value) for value in node.values.values())
        return f"INSERT INTO {table} ({columns}) VALUES ({values});"

    def _header(self, graph: "CherryPickGraph", row_count: int) -> list[str]:
        tables = {node.key.table_identity for node in graph}
        header = ["-- Generated by cherrypick"]
        for root in graph.roots:
            header.append(f"-- Root: {root}")
        header.append(f"-- Rows: {row_count} from {len(tables)} table(s)")
        return header
