from typing import Any

from cherrypick.constants import MAX_AVAILABLE_COLUMNS_DISPLAY

__all__ = [
    "CherryPickError",
    "ConnectionError",
    "InvalidURLError",
    "UnsupportedDatabaseError",
    "SchemaNotFoundError",
    "IntrospectionError",
    "FetchError",
    "RowNotFoundError",
    "MissingPrimaryKeyError",
    "CyclicDependencyError",
    "ColumnNotFoundError",
    "UnknownSourceDatabaseError",
    "InvalidDisplayColumnsError",
]


class CherryPickError(Exception):
    """Base exception for all cherrypick errors."""

    pass


class ConnectionError(CherryPickError):
    """Failed to connect to database."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        masked_url = self._mask_password(url)
        super().__init__(f"Cannot connect to {masked_url}: {reason}")

    @staticmethod
    def _mask_password(url: str) -> str:
        """Mask password in database URL for safe display."""
        import re

        # Match password in URL: ://user:password@host
        return re.sub(r"(://[^:]+:)(.+)(@[^@]+)$", r"\1****\3", url)


class InvalidURLError(CherryPickError):
    """Database URL is malformed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid database URL: {reason}")


class UnsupportedDatabaseError(CherryPickError):
    """Database type is not supported."""

    def __init__(self, db_type: str):
        self.db_type = db_type
        super().__init__(f"Unsupported database type: '{db_type}'. Supported types: postgresql")


class SchemaNotFoundError(CherryPickError):
    """Referenced table does not exist in the given schema."""

    def __init__(self, schema: str, table: str):
        self.schema = schema
        self.table = table
        super().__init__(f"Table '{schema}.{table}' not found in database")


class IntrospectionError(CherryPickError):
    """Query gateway failed while reading table structure."""

    def __init__(self, schema: str, table: str, reason: str):
        self.schema = schema
        self.table = table
        self.reason = reason
        super().__init__(f"Failed to introspect table '{schema}.{table}': {reason}")


class FetchError(CherryPickError):
    """Fetching rows failed, possibly after exhausting retries."""

    def __init__(
        self,
        schema: str,
        table: str,
        filters: list[tuple[str, Any]],
        reason: str,
        attempts: int = 1,
    ):
        self.schema = schema
        self.table = table
        self.filters = filters
        self.reason = reason
        self.attempts = attempts
        condition = " AND ".join(f"{col} = {val!r}" for col, val in filters) or "<all rows>"
        msg = f"Failed to fetch rows from '{schema}.{table}' where {condition}: {reason}"
        if attempts > 1:
            msg += f" (after {attempts} attempts)"
        super().__init__(msg)


class RowNotFoundError(CherryPickError):
    """Root filter matched no rows."""

    def __init__(self, schema: str, table: str, column: str, value: Any):
        self.schema = schema
        self.table = table
        self.column = column
        self.value = value
        super().__init__(f"Row with {column} = {value!r} is not found in table '{schema}.{table}'")


class MissingPrimaryKeyError(CherryPickError):
    """Table has no primary key, so its rows cannot be identified."""

    def __init__(self, schema: str, table: str):
        self.schema = schema
        self.table = table
        super().__init__(
            f"Table '{schema}.{table}' has no primary key; rows cannot be cherry-picked from it"
        )


class CyclicDependencyError(CherryPickError):
    """Insert order could not be resolved; indicates a graph construction defect."""

    def __init__(self, remaining: list[str]):
        self.remaining = remaining
        preview = ", ".join(remaining[:MAX_AVAILABLE_COLUMNS_DISPLAY])
        if len(remaining) > MAX_AVAILABLE_COLUMNS_DISPLAY:
            preview += f" (and {len(remaining) - MAX_AVAILABLE_COLUMNS_DISPLAY} more)"
        super().__init__(
            f"Cannot order INSERT statements, {len(remaining)} row(s) depend on each other: "
            f"{preview}. This is a bug in graph construction, please report it."
        )


class ColumnNotFoundError(CherryPickError):
    """Referenced column does not exist in the table."""

    def __init__(self, table: str, column: str, available_columns: list[str] | None = None):
        self.table = table
        self.column = column
        self.available_columns = available_columns
        msg = f"Column '{column}' not found in table '{table}'"
        if available_columns:
            msg += f". Available columns: {', '.join(available_columns[:MAX_AVAILABLE_COLUMNS_DISPLAY])}"
            if len(available_columns) > MAX_AVAILABLE_COLUMNS_DISPLAY:
                msg += f" (and {len(available_columns) - MAX_AVAILABLE_COLUMNS_DISPLAY} more)"
        super().__init__(msg)


class UnknownSourceDatabaseError(CherryPickError):
    """Named source database is not registered in the config file."""

    def __init__(self, name: str, available: list[str] | None = None):
        self.name = name
        self.available = available
        msg = f"Source db '{name}' is not registered"
        if available:
            msg += f". Registered: {', '.join(sorted(available))}"
        super().__init__(msg)


class InvalidDisplayColumnsError(CherryPickError):
    """Graph display column specification is malformed."""

    def __init__(self, spec: str, reason: str):
        self.spec = spec
        self.reason = reason
        super().__init__(f"Invalid graph table columns '{spec}': {reason}")
