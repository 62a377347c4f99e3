import time
from collections.abc import Callable
from dataclasses import dataclass, field

from cherrypick.adapters.base import QueryGateway
from cherrypick.config import CherryPickConfig, OutputFormat, RootSelector
from cherrypick.core.catalog import SchemaCatalog
from cherrypick.core.graph import CherryPickGraph, GraphBuilder
from cherrypick.logging import get_logger
from cherrypick.output.dot import GraphDescriptionGenerator
from cherrypick.output.sql import InsertStatementGenerator
from cherrypick.utils.connection import get_gateway_for_url, parse_database_url

logger = get_logger(__name__)

# Type alias for progress callback functions.
#
# Signature: (stage: str, message: str) -> None
#
# Args:
#     stage: Current stage ("connect", "build", "serialize")
#     message: Human-readable status message
ProgressCallback = Callable[[str, str], None]


@dataclass
class CherryPickResult:
    """Finished cherry-pick: the graph and its serialized form."""

    graph: CherryPickGraph
    output: str
    stats: dict[str, int] = field(default_factory=dict)

    def row_count(self) -> int:
        return len(self.graph)

    def table_count(self) -> int:
        return len(self.stats)


class CherryPickEngine:
    """
    Orchestrates a cherry-pick.

    Flow:
    1. Connect to the database
    2. Open a snapshot transaction and a fresh schema catalog
    3. Build the row graph from the root selector
    4. Serialize the graph in the configured output format
    5. Close the connection, also on failure
    """

    def __init__(
        self,
        config: CherryPickConfig,
        progress_callback: ProgressCallback | None = None,
        gateway: QueryGateway | None = None,
    ):
        self.config = config
        self.progress_callback = progress_callback
        self.gateway = gateway

    def _log(self, stage: str, message: str) -> None:
        """Send progress update to callback if configured."""
        if self.progress_callback:
            self.progress_callback(stage, message)

    def run(self) -> CherryPickResult:
        """Build the graph and serialize it."""
        graph = self.build_graph()

        self._log("serialize", f"Rendering {self.config.output_format.value} output...")
        with logger.timed_operation("serialize", output_format=self.config.output_format.value):
            output = self.serialize(graph)

        stats: dict[str, int] = {}
        for node in graph:
            table = str(node.key.table_identity)
            stats[table] = stats.get(table, 0) + 1

        return CherryPickResult(graph=graph, output=output, stats=stats)

    def build_graph(self) -> CherryPickGraph:
        """
        Connect, build the row graph inside a snapshot transaction, disconnect.

        Errors are logged once and re-raised; no partial graph is returned.
        """
        start_time = time.time()
        selector = self.config.selector

        db_config = parse_database_url(self.config.database_url)
        logger.info(
            "Starting cherry-pick",
            database=db_config.database,
            root=str(selector),
        )

        gateway = self.gateway or get_gateway_for_url(
            self.config.database_url, retry=self.config.retry
        )

        try:
            with logger.timed_operation("database_connection", database=db_config.database):
                gateway.connect(self.config.database_url)
            self._log("connect", "Connected successfully")

            with gateway.snapshot_transaction():
                graph = self._build(gateway, selector)

            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.info(
                "Cherry-pick graph built",
                rows=len(graph),
                edges=len(graph.edges),
                duration_ms=elapsed_ms,
            )
            return graph
        except Exception as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.error("Cherry-pick failed", error=str(e), duration_ms=elapsed_ms)
            raise
        finally:
            gateway.close()
            logger.debug("Database connection closed")

    def _build(self, gateway: QueryGateway, selector: RootSelector) -> CherryPickGraph:
        catalog = SchemaCatalog(gateway)
        builder = GraphBuilder(catalog, gateway)

        self._log("build", f"Collecting rows related to {selector}...")
        with logger.timed_operation("graph_build", root=str(selector)):
            graph = builder.build(selector)

        self._log(
            "build",
            f"Found {len(graph)} rows across {len(catalog)} introspected tables",
        )
        return graph

    def serialize(self, graph: CherryPickGraph) -> str:
        """Render a graph in the configured output format."""
        if self.config.output_format == OutputFormat.GRAPHVIZ:
            return GraphDescriptionGenerator(self.config.display_columns).generate(graph)

        return InsertStatementGenerator(
            include_transaction=self.config.include_transaction
        ).render(graph)


def cherry_pick(
    database_url: str,
    table: str,
    value: str,
    column: str = "id",
    schema: str = "public",
    output_format: OutputFormat = OutputFormat.INSERT_STATEMENT,
    display_columns: dict[str, list[str]] | None = None,
) -> str:
    """
    Cherry-pick one row and everything related to it.

    Example:
        sql = cherry_pick("postgres://localhost/shop", "orders", "42")
    """
    config = CherryPickConfig(
        database_url=database_url,
        selector=RootSelector(table=table, value=value, column=column, schema=schema),
        output_format=output_format,
        display_columns=display_columns or {},
    )
    return CherryPickEngine(config).run().output
