import threading

from cherrypick.adapters.base import QueryGateway
from cherrypick.logging import get_logger
from cherrypick.models import TableIdentity, TableSchema

logger = get_logger(__name__)


class SchemaCatalog:
    """
    Memoized table structure for the duration of one cherry-pick.

    Tables are introspected lazily through the gateway the first time they
    are referenced. Lookups and fills are guarded by a lock; introspection
    itself runs outside the lock, so two threads asking for the same missing
    table may both introspect it, and whichever stores first wins.
    """

    def __init__(self, gateway: QueryGateway):
        self.gateway = gateway
        self._tables: dict[TableIdentity, TableSchema] = {}
        self._lock = threading.Lock()

    def get_schema(self, schema: str, table: str) -> TableSchema:
        """
        Get the structure of a table, introspecting it on first use.

        Raises:
            SchemaNotFoundError: If the table does not exist
            IntrospectionError: If the gateway fails while reading the structure
        """
        key = TableIdentity(schema, table)

        with self._lock:
            cached = self._tables.get(key)
        if cached is not None:
            return cached

        logger.debug("Schema cache miss", schema=schema, table=table)
        table_schema = self.gateway.introspect_table(schema, table)

        with self._lock:
            return self._tables.setdefault(key, table_schema)

    def cached_tables(self) -> list[TableIdentity]:
        """Tables introspected so far, in the order they were first stored."""
        with self._lock:
            return list(self._tables.keys())

    def __contains__(self, item: object) -> bool:
        if isinstance(item, tuple) and len(item) == 2:
            item = TableIdentity(*item)
        with self._lock:
            return item in self._tables

    def __len__(self) -> int:
        with self._lock:
            return len(self._tables)
