#!/usr/bin/env python3
"""Example: Using cherrypick as a Python library.

This script cherry-picks one order from a source database, prints what
was collected, and saves both the INSERT script and a Graphviz rendering
of the row graph.

Usage:
    DATABASE_URL=postgres://localhost/myapp python python-api-example.py
    DATABASE_URL=postgres://localhost/myapp ORDER_ID=456 python python-api-example.py
"""

import os
from pathlib import Path

from cherrypick.config import CherryPickConfig, OutputFormat, RootSelector
from cherrypick.core.engine import CherryPickEngine, cherry_pick
from cherrypick.output.sql import InsertStatementGenerator


def cherry_pick_order(database_url: str, order_id: int) -> str:
    """Cherry-pick an order and every row related to it.

    Args:
        database_url: Database connection URL
        order_id: The order ID to start from

    Returns:
        SQL statements as a string
    """
    config = CherryPickConfig(
        database_url=database_url,
        selector=RootSelector(table="orders", value=str(order_id)),
        output_format=OutputFormat.INSERT_STATEMENT,
    )

    result = CherryPickEngine(config).run()

    print(f"Collected {result.row_count()} rows from {result.table_count()} tables:")
    for table, count in sorted(result.stats.items()):
        print(f"  - {table}: {count} rows")

    # Insert order, without rendering the script
    print("")
    print("Insert order:")
    for node in InsertStatementGenerator().order(result.graph):
        print(f"  {node.key}")

    return result.output


def main():
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        print("Error: DATABASE_URL environment variable is required")
        print("")
        print("Example:")
        print("  DATABASE_URL=postgres://localhost/myapp python python-api-example.py")
        return

    order_id = int(os.environ.get("ORDER_ID", "123"))
    print(f"Cherry-picking order {order_id}...")
    print("")

    sql = cherry_pick_order(database_url, order_id)
    sql_path = Path(f"order_{order_id}.sql")
    sql_path.write_text(sql)

    dot = cherry_pick(
        database_url,
        "orders",
        str(order_id),
        output_format=OutputFormat.GRAPHVIZ,
        display_columns={"orders": ["id", "status"]},
    )
    dot_path = Path(f"order_{order_id}.dot")
    dot_path.write_text(dot)

    print("")
    print(f"Saved to {sql_path} and {dot_path}")
    print(f"Render with: dot -Tsvg {dot_path} > order_{order_id}.svg")


if __name__ == "__main__":
    main()
