from dataclasses import dataclass, field
from enum import Enum

from cherrypick.values import TypedValue


@dataclass(frozen=True)
class TableIdentity:
    """Schema-qualified table name."""

    schema: str
    name: str

    def __str__(self) -> str:
        return f"{self.schema}.{self.name}"

    @classmethod
    def parse(cls, text: str, default_schema: str) -> "TableIdentity":
        """Parse 'schema.table' or a bare 'table' (which gets default_schema)."""
        text = text.strip()
        if "." in text:
            schema, name = text.split(".", 1)
            return cls(schema.strip(), name.strip())
        return cls(default_schema, text)


@dataclass(frozen=True)
class ColumnDescriptor:
    """Represents a database column."""

    name: str
    data_type: str
    nullable: bool

    def __hash__(self) -> int:
        return hash((self.name, self.data_type))


@dataclass(frozen=True)
class ForeignKeyRelation:
    """
    A foreign key constraint: the source table references the target table.

    Column tuples are ordered so that source_columns[i] references
    target_columns[i].
    """

    name: str
    source_schema: str
    source_table: str
    source_columns: tuple[str, ...]
    target_schema: str
    target_table: str
    target_columns: tuple[str, ...]

    def __post_init__(self):
        if len(self.source_columns) != len(self.target_columns):
            raise ValueError(
                f"Foreign key '{self.name}' pairs {len(self.source_columns)} source column(s) "
                f"with {len(self.target_columns)} target column(s)"
            )

    def __hash__(self) -> int:
        return hash((self.name, self.source_schema, self.source_table))

    @property
    def source(self) -> TableIdentity:
        return TableIdentity(self.source_schema, self.source_table)

    @property
    def target(self) -> TableIdentity:
        return TableIdentity(self.target_schema, self.target_table)

    @property
    def column_pairs(self) -> tuple[tuple[str, str], ...]:
        """(source_column, target_column) pairs in constraint order."""
        return tuple(zip(self.source_columns, self.target_columns))

    @property
    def is_self_referential(self) -> bool:
        """Check if this FK references the same table."""
        return self.source == self.target


@dataclass(frozen=True)
class TableSchema:
    """
    Structure of one table: columns, primary key and foreign keys in both directions.

    outgoing: relations where this table holds the FK (this table -> its parents)
    incoming: relations where another table's FK points here (this table's children)
    """

    schema: str
    name: str
    columns: tuple[ColumnDescriptor, ...]
    primary_key: tuple[str, ...]
    outgoing: tuple[ForeignKeyRelation, ...] = ()
    incoming: tuple[ForeignKeyRelation, ...] = ()

    def __hash__(self) -> int:
        return hash((self.schema, self.name))

    @property
    def identity(self) -> TableIdentity:
        return TableIdentity(self.schema, self.name)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}"

    def get_column(self, name: str) -> ColumnDescriptor | None:
        """Get a column by name."""
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def get_column_names(self) -> list[str]:
        """Get all column names in table order."""
        return [col.name for col in self.columns]

    def has_column(self, name: str) -> bool:
        return self.get_column(name) is not None


@dataclass(frozen=True)
class RowKey:
    """Identity of a row: table plus its primary-key values."""

    schema: str
    table: str
    values: tuple[TypedValue, ...]

    @property
    def table_identity(self) -> TableIdentity:
        return TableIdentity(self.schema, self.table)

    def label(self) -> str:
        """Primary-key values as a short display string."""
        labels = [v.display_label() for v in self.values]
        if len(labels) == 1:
            return labels[0]
        return f"({', '.join(labels)})"

    def __str__(self) -> str:
        return f"{self.schema}.{self.table}#{self.label()}"


@dataclass(frozen=True)
class RowNode:
    """A fetched row. Column order follows the table's column order."""

    key: RowKey
    values: dict[str, TypedValue]
    table: TableSchema

    def __hash__(self) -> int:
        return hash(self.key)

    def get(self, column: str) -> TypedValue | None:
        return self.values.get(column)

    def column_names(self) -> list[str]:
        return list(self.values.keys())


class EdgeDirection(Enum):
    """How an edge was discovered relative to the expanded row."""

    PARENT = "parent"  # Found while expanding the row that holds the FK
    CHILD = "child"  # Found while expanding the referenced row


@dataclass(frozen=True)
class RelationEdge:
    """
    One instantiated foreign key between two rows.

    from_key always holds the foreign key and to_key is the row it references,
    so "to_key must be inserted before from_key" for every edge.
    """

    from_key: RowKey
    to_key: RowKey
    relation: ForeignKeyRelation
    direction: EdgeDirection = field(compare=False)

    @property
    def dedup_key(self) -> tuple[RowKey, RowKey, str]:
        return (self.from_key, self.to_key, self.relation.name)

    @property
    def is_self_loop(self) -> bool:
        return self.from_key == self.to_key
