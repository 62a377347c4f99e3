import time
from typing import Any

import psycopg2
import psycopg2.extras

from cherrypick.adapters.base import QueryGateway, RawColumn, RawRow
from cherrypick.config import DatabaseType, RetryPolicy
from cherrypick.exceptions import (
    ConnectionError,
    FetchError,
    IntrospectionError,
    SchemaNotFoundError,
)
from cherrypick.logging import get_logger, log_query_execution
from cherrypick.models import ColumnDescriptor, ForeignKeyRelation, TableSchema
from cherrypick.utils.connection import parse_database_url
from cherrypick.values import is_text_form_type

logger = get_logger(__name__)

# Errors worth another attempt: dropped connections, server restarts, timeouts
RETRYABLE_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError)


class PostgreSQLGateway(QueryGateway):
    """PostgreSQL-specific query gateway."""

    def __init__(self, retry: RetryPolicy | None = None):
        self._conn: Any = None
        self._url: str | None = None
        self._in_snapshot = False
        self._column_types: dict[tuple[str, str], dict[str, str]] = {}
        self.retry = retry or RetryPolicy()

    def connect(self, url: str) -> None:
        """Establish PostgreSQL connection."""
        config = parse_database_url(url)

        if config.db_type != DatabaseType.POSTGRESQL:
            raise ConnectionError(url, f"Expected PostgreSQL URL, got {config.db_type.value}")

        logger.debug(
            "Connecting to PostgreSQL",
            host=config.host,
            port=config.port,
            database=config.database,
            user=config.user,
        )

        try:
            self._conn = psycopg2.connect(**config.connect_kwargs())
            # Use autocommit for reads by default
            self._conn.autocommit = True
            psycopg2.extras.register_uuid(conn_or_curs=self._conn)
            self._url = url

            logger.info("PostgreSQL connection established", database=config.database)
        except psycopg2.Error as e:
            logger.error("PostgreSQL connection failed", error=str(e))
            raise ConnectionError(url, str(e))

    def close(self) -> None:
        """Close PostgreSQL connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            self._in_snapshot = False
            logger.debug("PostgreSQL connection closed")

    def introspect_table(self, schema: str, table: str) -> TableSchema:
        """Introspect a single PostgreSQL table."""
        logger.debug("Introspecting table", schema=schema, table=table)

        try:
            if not self._table_exists(schema, table):
                raise SchemaNotFoundError(schema, table)

            columns = self._fetch_columns(schema, table)
            primary_key = self._fetch_primary_key(schema, table)
            outgoing, incoming = self._fetch_foreign_keys(schema, table)
        except psycopg2.Error as e:
            logger.error("Table introspection failed", schema=schema, table=table, error=str(e))
            raise IntrospectionError(schema, table, str(e)) from e

        self._column_types[(schema, table)] = {c.name: c.data_type for c in columns}

        logger.debug(
            "Table introspected",
            schema=schema,
            table=table,
            column_count=len(columns),
            primary_key=primary_key,
            outgoing=len(outgoing),
            incoming=len(incoming),
        )

        return TableSchema(
            schema=schema,
            name=table,
            columns=tuple(columns),
            primary_key=primary_key,
            outgoing=tuple(outgoing),
            incoming=tuple(incoming),
        )

    def _table_exists(self, schema: str, table: str) -> bool:
        with self._conn.cursor() as cur:
            cur.execute(
                """
                SELECT 1
                FROM information_schema.tables
                WHERE table_schema = %s
                  AND table_name = %s
                """,
                (schema, table),
            )
            return cur.fetchone() is not None

    def _fetch_columns(self, schema: str, table: str) -> list[ColumnDescriptor]:
        """Fetch columns in ordinal order.

        Enums, extension types like citext, and arrays report 'USER-DEFINED'
        or 'ARRAY' as data_type, so udt_name is used for those.
        """
        columns: list[ColumnDescriptor] = []
        with self._conn.cursor() as cur:
            cur.execute(
                """
                SELECT
                    column_name,
                    data_type,
                    udt_name,
                    is_nullable
                FROM information_schema.columns
                WHERE table_schema = %s
                  AND table_name = %s
                ORDER BY ordinal_position
                """,
                (schema, table),
            )
            for col_name, data_type, udt_name, is_nullable in cur.fetchall():
                if data_type in ("USER-DEFINED", "ARRAY"):
                    data_type = udt_name
                columns.append(
                    ColumnDescriptor(
                        name=col_name,
                        data_type=data_type,
                        nullable=is_nullable == "YES",
                    )
                )
        return columns

    def _fetch_primary_key(self, schema: str, table: str) -> tuple[str, ...]:
        with self._conn.cursor() as cur:
            cur.execute(
                """
                SELECT kcu.column_name
                FROM information_schema.table_constraints tc
                JOIN information_schema.key_column_usage kcu
                    ON tc.constraint_name = kcu.constraint_name
                    AND tc.table_schema = kcu.table_schema
                    AND tc.table_name = kcu.table_name
                WHERE tc.constraint_type = 'PRIMARY KEY'
                  AND tc.table_schema = %s
                  AND tc.table_name = %s
                ORDER BY kcu.ordinal_position
                """,
                (schema, table),
            )
            return tuple(row[0] for row in cur.fetchall())

    def _fetch_foreign_keys(
        self, schema: str, table: str
    ) -> tuple[list[ForeignKeyRelation], list[ForeignKeyRelation]]:
        """Fetch foreign keys held by the table and foreign keys pointing at it.

        Uses pg_catalog instead of information_schema to correctly handle
        composite foreign keys. The information_schema approach produces a
        cross product between source and target columns for multi-column FKs.
        """
        with self._conn.cursor() as cur:
            cur.execute(
                """
                SELECT
                    c.conname AS constraint_name,
                    source_ns.nspname AS source_schema,
                    source_cls.relname AS source_table,
                    a_source.attname AS source_column,
                    target_ns.nspname AS target_schema,
                    target_cls.relname AS target_table,
                    a_target.attname AS target_column
                FROM pg_constraint c
                JOIN pg_class source_cls ON c.conrelid = source_cls.oid
                JOIN pg_namespace source_ns ON source_cls.relnamespace = source_ns.oid
                JOIN pg_class target_cls ON c.confrelid = target_cls.oid
                JOIN pg_namespace target_ns ON target_cls.relnamespace = target_ns.oid
                CROSS JOIN LATERAL unnest(c.conkey, c.confkey)
                    WITH ORDINALITY AS u(source_attnum, target_attnum, ord)
                JOIN pg_attribute a_source
                    ON a_source.attrelid = c.conrelid
                    AND a_source.attnum = u.source_attnum
                JOIN pg_attribute a_target
                    ON a_target.attrelid = c.confrelid
                    AND a_target.attnum = u.target_attnum
                WHERE c.contype = 'f'
                  AND (
                    (source_ns.nspname = %s AND source_cls.relname = %s)
                    OR (target_ns.nspname = %s AND target_cls.relname = %s)
                  )
                ORDER BY source_ns.nspname, source_cls.relname, c.conname, u.ord
                """,
                (schema, table, schema, table),
            )

            # Group by owning table + constraint name for multi-column FKs
            fk_data: dict[tuple[str, str, str], dict] = {}
            for row in cur.fetchall():
                (
                    constraint_name,
                    source_schema,
                    source_table,
                    source_col,
                    target_schema,
                    target_table,
                    target_col,
                ) = row

                key = (source_schema, source_table, constraint_name)
                if key not in fk_data:
                    fk_data[key] = {
                        "name": constraint_name,
                        "source_schema": source_schema,
                        "source_table": source_table,
                        "source_columns": [],
                        "target_schema": target_schema,
                        "target_table": target_table,
                        "target_columns": [],
                    }

                fk_data[key]["source_columns"].append(source_col)
                fk_data[key]["target_columns"].append(target_col)

        outgoing: list[ForeignKeyRelation] = []
        incoming: list[ForeignKeyRelation] = []
        for data in fk_data.values():
            fk = ForeignKeyRelation(
                name=data["name"],
                source_schema=data["source_schema"],
                source_table=data["source_table"],
                source_columns=tuple(data["source_columns"]),
                target_schema=data["target_schema"],
                target_table=data["target_table"],
                target_columns=tuple(data["target_columns"]),
            )
            # A self-referencing FK is both a parent and a child relation
            if (fk.source_schema, fk.source_table) == (schema, table):
                outgoing.append(fk)
            if (fk.target_schema, fk.target_table) == (schema, table):
                incoming.append(fk)

        return outgoing, incoming

    def _declared_types(self, schema: str, table: str) -> dict[str, str]:
        """Column -> declared type, introspecting the columns if not seen yet."""
        key = (schema, table)
        if key not in self._column_types:
            self._column_types[key] = {
                c.name: c.data_type for c in self._fetch_columns(schema, table)
            }
        return self._column_types[key]

    def fetch_rows(
        self,
        schema: str,
        table: str,
        filters: list[tuple[str, Any]],
    ) -> list[RawRow]:
        """
        Fetch rows matching all (column, value) equality filters.

        Transient failures (psycopg2.OperationalError / InterfaceError) are
        retried according to the retry policy. Any other driver error, or a
        transient one that outlasts the policy, raises FetchError.
        """
        where = ""
        if filters:
            placeholder = self.get_placeholder()
            conditions = [f"{self.quote_identifier(col)} = {placeholder}" for col, _ in filters]
            where = " WHERE " + " AND ".join(conditions)
        params = tuple(value for _, value in filters)
        fetch_logger = logger.with_context(schema=schema, table=table)

        attempt = 0
        while True:
            attempt += 1
            try:
                return self._execute_fetch(schema, table, where, params)
            except RETRYABLE_ERRORS as e:
                if attempt >= self.retry.max_attempts:
                    fetch_logger.error(
                        "Fetch failed, retries exhausted", attempts=attempt, error=str(e)
                    )
                    raise FetchError(schema, table, list(filters), str(e), attempts=attempt) from e

                delay = self.retry.delay_for(attempt)
                fetch_logger.warning(
                    "Transient fetch failure, retrying",
                    attempt=attempt,
                    max_attempts=self.retry.max_attempts,
                    delay_seconds=delay,
                    error=str(e),
                )
                time.sleep(delay)
                self._recover()
            except psycopg2.Error as e:
                fetch_logger.error("Failed to fetch rows", error=str(e))
                raise FetchError(schema, table, list(filters), str(e), attempts=attempt) from e

    def _execute_fetch(
        self, schema: str, table: str, where: str, params: tuple[Any, ...]
    ) -> list[RawRow]:
        types = self._declared_types(schema, table)
        table_ref = self.qualified_table(schema, table)
        query = f"SELECT {self._select_list(types)} FROM {table_ref}{where}"
        rows: list[RawRow] = []
        with self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(query, params)
            for row in cur:
                rows.append(
                    {col: RawColumn(value, types.get(col, "unknown")) for col, value in row.items()}
                )
        log_query_execution(logger, query, params, row_count=len(rows))
        return rows

    def _select_list(self, types: dict[str, str]) -> str:
        """
        Columns to select, casting types without a native decoder to text.

        psycopg2 turns arrays, intervals, hstore and the like into Python
        objects whose str() is not valid SQL input. Their server text form is.
        """
        if not any(is_text_form_type(t) for t in types.values()):
            return "*"
        columns = []
        for name, declared_type in types.items():
            quoted = self.quote_identifier(name)
            if is_text_form_type(declared_type):
                columns.append(f"{quoted}::text AS {quoted}")
            else:
                columns.append(quoted)
        return ", ".join(columns)

    def _recover(self) -> None:
        """Bring the connection back to a usable state after a transient failure."""
        if self._conn is None or self._conn.closed:
            if self._url is None:
                return
            in_snapshot = self._in_snapshot
            try:
                self.connect(self._url)
            except ConnectionError as e:
                # Next attempt fails again and is counted against the retry budget
                logger.warning("Reconnect failed", error=str(e))
                return
            if in_snapshot:
                logger.warning("Connection re-established, snapshot restarted")
                self.begin_snapshot()
            return

        try:
            self._conn.rollback()
        except psycopg2.Error as e:
            logger.warning("Rollback after transient failure failed", error=str(e))
            return
        if self._in_snapshot:
            logger.warning("Transaction rolled back, snapshot restarted")
            self._start_snapshot()

    def begin_snapshot(self) -> None:
        """Begin a read-only snapshot transaction with REPEATABLE READ isolation."""
        if self._conn:
            self._conn.autocommit = False
            self._start_snapshot()
            self._in_snapshot = True

    def _start_snapshot(self) -> None:
        with self._conn.cursor() as cur:
            cur.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ READ ONLY")

    def end_snapshot(self) -> None:
        """End the snapshot transaction."""
        if self._conn and not self._conn.closed:
            self._conn.rollback()  # Read-only, so rollback is fine
            self._conn.autocommit = True
        self._in_snapshot = False
