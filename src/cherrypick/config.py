from dataclasses import dataclass, field
from enum import Enum

from cherrypick.constants import (
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_EXPONENTIAL_BASE,
    DEFAULT_RETRY_INITIAL_DELAY,
    DEFAULT_RETRY_MAX_DELAY,
    DEFAULT_ROOT_COLUMN,
    DEFAULT_SCHEMA,
)


class DatabaseType(Enum):
    """Supported database types."""

    POSTGRESQL = "postgresql"


class OutputFormat(Enum):
    """Output format options."""

    INSERT_STATEMENT = "insert-statement"
    GRAPHVIZ = "graphviz"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for row fetches."""

    max_attempts: int = DEFAULT_RETRY_ATTEMPTS
    initial_delay_seconds: float = DEFAULT_RETRY_INITIAL_DELAY
    max_delay_seconds: float = DEFAULT_RETRY_MAX_DELAY
    exponential_base: float = DEFAULT_RETRY_EXPONENTIAL_BASE

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.initial_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("Retry delays cannot be negative")
        if self.exponential_base < 1:
            raise ValueError(f"exponential_base must be >= 1, got {self.exponential_base}")

    def delay_for(self, attempt: int) -> float:
        """
        Seconds to wait after the given failed attempt (1-based).

        Examples:
            >>> RetryPolicy(initial_delay_seconds=0.5).delay_for(1)
            0.5
            >>> RetryPolicy(initial_delay_seconds=0.5).delay_for(3)
            2.0
        """
        delay = self.initial_delay_seconds * (self.exponential_base ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


@dataclass
class RootSelector:
    """The row a cherry-pick starts from: schema.table where column = value."""

    table: str
    value: str
    column: str = DEFAULT_ROOT_COLUMN
    schema: str = DEFAULT_SCHEMA

    def __str__(self) -> str:
        return f"{self.schema}.{self.table}.{self.column}={self.value}"

    def validate(self) -> None:
        """
        Check identifiers and value.

        Raises:
            IdentifierValidationError: If schema, table or column is not a safe identifier
            SelectorValidationError: If the value is empty or too long
        """
        # Import validators here to avoid circular imports
        from cherrypick.input_validators import (
            validate_column_name,
            validate_root_value,
            validate_schema_name,
            validate_table_name,
        )

        validate_schema_name(self.schema)
        validate_table_name(self.table)
        validate_column_name(self.column)
        validate_root_value(self.value)

    @classmethod
    def parse(cls, selector_str: str) -> "RootSelector":
        """
        Parse a selector string into a RootSelector.

        Formats:
        - "schema.table.column=value"
        - "table.column=value" (schema defaults to 'public')

        Quotes around the value are stripped. The value stays text; PostgreSQL
        coerces it to the column's type when the row is fetched.

        Raises:
            ValueError: If the format is invalid or identifiers are unsafe
        """
        if not selector_str or not selector_str.strip():
            raise ValueError("Root selector cannot be empty")

        if "=" not in selector_str:
            raise ValueError(
                f"Invalid root selector: {selector_str!r}. Use 'schema.table.column=value'"
            )

        eq_pos = selector_str.index("=")
        left = selector_str[:eq_pos].strip()
        value = selector_str[eq_pos + 1 :].strip()

        parts = [p.strip() for p in left.split(".")]
        if len(parts) == 2:
            schema = DEFAULT_SCHEMA
            table, column = parts
        elif len(parts) == 3:
            schema, table, column = parts
        else:
            raise ValueError(
                f"Invalid root selector: {selector_str!r}. Use 'schema.table.column=value'"
            )

        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]

        from cherrypick.input_validators import ValidationError

        selector = cls(table=table, value=value, column=column, schema=schema)
        try:
            selector.validate()
        except ValidationError as e:
            raise ValueError(f"Invalid root selector {selector_str!r}: {e}") from e

        return selector


def parse_display_columns(specs: list[str]) -> dict[str, list[str]]:
    """
    Parse graph display column specifications.

    Each entry has the form '{table}:{column_1}|{column_2}|...'. Entries may
    also be passed comma separated in a single string, as in
    'users:id|name|email, orders:|code'. Table keys may be bare table names
    or 'schema.table'. Empty column names are dropped.

    Args:
        specs: Raw specification strings

    Returns:
        Mapping of table key to ordered display columns

    Raises:
        InvalidDisplayColumnsError: If an entry has no ':' separator or no table name
    """
    from cherrypick.exceptions import InvalidDisplayColumnsError

    result: dict[str, list[str]] = {}
    for raw in specs:
        for entry in raw.split(","):
            entry = entry.strip()
            if not entry:
                continue

            if ":" not in entry:
                raise InvalidDisplayColumnsError(
                    entry, "expected format '{table}:{column_1}|{column_n}'"
                )

            table_key, pipe_columns = entry.split(":", 1)
            table_key = table_key.strip()
            if not table_key:
                raise InvalidDisplayColumnsError(entry, "table name is empty")

            columns = [c.strip() for c in pipe_columns.split("|") if c.strip()]
            result.setdefault(table_key, [])
            for col in columns:
                if col not in result[table_key]:
                    result[table_key].append(col)

    return result


@dataclass
class CherryPickConfig:
    """Configuration for a cherry-pick operation."""

    database_url: str
    selector: RootSelector
    output_format: OutputFormat = OutputFormat.INSERT_STATEMENT
    display_columns: dict[str, list[str]] = field(default_factory=dict)
    output_file: str | None = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    include_transaction: bool = True
    verbose: bool = False
    no_progress: bool = False
