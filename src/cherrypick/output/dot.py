from typing import TYPE_CHECKING

from cherrypick.models import RowKey, RowNode
from cherrypick.values import render_display_label

if TYPE_CHECKING:
    from cherrypick.core.graph import CherryPickGraph


def _escape(text: str) -> str:
    """Escape text for a double-quoted DOT string."""
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", " ")


class GraphDescriptionGenerator:
    """
    Serializes a cherry-pick graph as a Graphviz DOT digraph.

    Each row becomes a node labelled with its table plus one 'column: value'
    line per display column. Tables without display columns show their
    primary key. Edges point from the referencing row to the referenced row
    and carry the constraint name. The root row(s) are filled.

    Args:
        display_columns: table -> columns to show. Keys are bare table names
            or 'schema.table'; the qualified key wins when both are present.
    """

    ROOT_STYLE = 'style="filled,bold", fillcolor="lightgoldenrod1"'

    def __init__(self, display_columns: dict[str, list[str]] | None = None):
        self.display_columns = display_columns or {}

    def generate(self, graph: "CherryPickGraph") -> str:
        lines = [
            "digraph cherrypick {",
            "  rankdir=LR;",
            '  node [shape=box, fontname="Helvetica"];',
            '  edge [fontname="Helvetica", fontsize=10];',
        ]

        for node in graph:
            attrs = f'label="{self._escaped_label(node)}"'
            if graph.is_root(node.key):
                attrs += f", {self.ROOT_STYLE}"
            lines.append(f'  "{self._node_id(node.key)}" [{attrs}];')

        for edge in graph.edges:
            lines.append(
                f'  "{self._node_id(edge.from_key)}" -> "{self._node_id(edge.to_key)}" '
                f'[label="{_escape(edge.relation.name)}"];'
            )

        lines.append("}")
        return "\n".join(lines) + "\n"

    def label_lines(self, node: RowNode) -> list[str]:
        """Label text for a row, one entry per line."""
        lines = [f"{node.key.schema}.{node.key.table}"]

        columns = self._columns_for(node)
        if columns:
            for column in columns:
                value = node.get(column)
                if value is None:
                    continue
                lines.append(f"{column}: {render_display_label(value)}")
        else:
            for column, value in zip(node.table.primary_key, node.key.values):
                lines.append(f"{column}: {render_display_label(value)}")

        return lines

    def _columns_for(self, node: RowNode) -> list[str]:
        qualified = f"{node.key.schema}.{node.key.table}"
        if qualified in self.display_columns:
            return self.display_columns[qualified]
        return self.display_columns.get(node.key.table, [])

    def _escaped_label(self, node: RowNode) -> str:
        return "\\n".join(_escape(line) for line in self.label_lines(node))

    def _node_id(self, key: RowKey) -> str:
        # Full literals, display labels are truncated and could collide
        pk = ",".join(value.sql_literal() for value in key.values)
        return _escape(f"{key.schema}.{key.table}#{pk}")
