from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, NamedTuple

from cherrypick.models import TableSchema


class RawColumn(NamedTuple):
    """A column value as returned by the driver, with the column's declared SQL type."""

    value: Any
    declared_type: str


RawRow = dict[str, RawColumn]
"""Column name -> RawColumn, in table column order."""


class QueryGateway(ABC):
    """
    Abstract base class for query gateways.

    Each gateway implements database-specific logic for:
    - Connection management
    - Introspection of a single table
    - Fetching rows by column equality
    - Transaction control for snapshot consistency
    """

    @abstractmethod
    def connect(self, url: str) -> None:
        """
        Establish database connection.

        Args:
            url: Database connection URL

        Raises:
            ConnectionError: If connection fails
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close database connection."""
        pass

    @abstractmethod
    def introspect_table(self, schema: str, table: str) -> TableSchema:
        """
        Read the structure of one table.

        Columns, primary key, and foreign keys in both directions (relations
        this table holds and relations pointing at it) are returned together.

        Raises:
            SchemaNotFoundError: If the table does not exist
            IntrospectionError: If the catalog queries fail
        """
        pass

    @abstractmethod
    def fetch_rows(
        self,
        schema: str,
        table: str,
        filters: list[tuple[str, Any]],
    ) -> list[RawRow]:
        """
        Fetch rows where every (column, value) filter matches by equality.

        Args:
            schema: Schema name
            table: Table name
            filters: (column, value) pairs combined with AND

        Returns:
            Matching rows, possibly empty

        Raises:
            FetchError: If the query fails (after retries, where applicable)
        """
        pass

    @abstractmethod
    def begin_snapshot(self) -> None:
        """
        Begin a snapshot transaction for consistent reads.

        This ensures all subsequent reads see a consistent view of the
        database, even if other transactions modify data.
        """
        pass

    @abstractmethod
    def end_snapshot(self) -> None:
        """End the snapshot transaction."""
        pass

    @contextmanager
    def snapshot_transaction(self):
        """
        Context manager for consistent snapshot reads.

        Usage:
            with gateway.snapshot_transaction():
                rows = gateway.fetch_rows(...)
        """
        self.begin_snapshot()
        try:
            yield
        finally:
            self.end_snapshot()

    def __enter__(self):
        """Support using gateway as context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Close connection when exiting context."""
        self.close()
        return False

    def quote_identifier(self, name: str) -> str:
        """
        Quote an identifier (schema, table or column name) for safe SQL.

        Embedded double quotes are doubled.
        """
        return '"' + name.replace('"', '""') + '"'

    def qualified_table(self, schema: str, table: str) -> str:
        return f"{self.quote_identifier(schema)}.{self.quote_identifier(table)}"

    def get_placeholder(self) -> str:
        """
        Get the parameter placeholder for this database.

        Default is %s (psycopg2 style). Override for others.
        """
        return "%s"
