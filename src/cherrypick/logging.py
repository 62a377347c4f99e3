"""
Logging for cherrypick runs.

Every record can carry keyword context such as the schema, table, row key
or a duration. Records go to stderr only: stdout carries the INSERT script
or DOT graph, and a log line there would corrupt it.

`--log-format json` switches to one JSON object per line for log shippers;
`--verbose` adds the per-row traversal and per-query debug records.
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from typing import Any

ROOT_LOGGER_NAME = "cherrypick"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
QUERY_PREVIEW_LENGTH = 200

_loggers: dict[str, logging.Logger] = {}


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "context", None) or {}


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record.

    Keys: timestamp, level, logger, message, plus ``context`` when the call
    passed keyword context and ``exception`` when it carried exc_info.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        context = _record_context(record)
        if context:
            log_data["context"] = context

        # Context may hold row key values (Decimal, UUID, dates)
        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Formats records as ``[time] LEVEL: message (key=value, ...)``."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, self.datefmt)
        line = f"[{timestamp}] {record.levelname}: {record.getMessage()}"

        context = _record_context(record)
        if context:
            line += " (" + ", ".join(f"{k}={v}" for k, v in context.items()) + ")"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


def setup_logging(
    verbose: bool = False,
    no_progress: bool = False,
    structured: bool = False,
) -> None:
    """
    Install the stderr handler on the ``cherrypick`` logger.

    Calling it again replaces the handler, so the CLI can run it once per
    command. ``verbose`` lowers the threshold to DEBUG; ``no_progress``
    (output piped into psql or a file) raises it to WARNING so only
    skipped tables, retries and failures are reported.
    """
    if verbose:
        level = logging.DEBUG
    elif no_progress:
        level = logging.WARNING
    else:
        level = logging.INFO

    formatter_class = StructuredFormatter if structured else HumanReadableFormatter
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(formatter_class(datefmt=DATE_FORMAT))

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(logging.DEBUG)  # the handler does the filtering
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.propagate = False


def get_logger(name: str) -> "ContextLogger":
    """
    Logger for a module, placed under the ``cherrypick`` hierarchy.

    Names outside the package (scripts, tests) are prefixed with
    ``cherrypick.`` so they share the handler installed by setup_logging.
    """
    if name not in _loggers:
        if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
            qualified = name
        else:
            qualified = f"{ROOT_LOGGER_NAME}.{name}"
        _loggers[name] = logging.getLogger(qualified)

    return ContextLogger(_loggers[name])


class ContextLogger:
    """
    Wraps a stdlib logger so log calls take keyword context.

        logger.warning("Skipping table without primary key", table="audit_log")

    The keywords are stored on the record as ``context`` and rendered by both
    formatters.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger
        self._context: dict[str, Any] = {}

    def _log(
        self, level: int, msg: str, context: dict[str, Any] | None = None, exc_info: Any = None
    ):
        merged = {**self._context, **(context or {})}
        extra = {"context": merged} if merged else {}
        self._logger.log(level, msg, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **context):
        self._log(logging.DEBUG, msg, context)

    def info(self, msg: str, **context):
        self._log(logging.INFO, msg, context)

    def warning(self, msg: str, **context):
        self._log(logging.WARNING, msg, context)

    def error(self, msg: str, exc_info: Any = None, **context):
        self._log(logging.ERROR, msg, context, exc_info=exc_info)

    def critical(self, msg: str, exc_info: Any = None, **context):
        self._log(logging.CRITICAL, msg, context, exc_info=exc_info)

    def with_context(self, **context) -> "ContextLogger":
        """
        Logger that adds ``context`` to every record.

        The gateway binds schema and table once per fetch so each retry
        warning names the table it is retrying.
        """
        bound = ContextLogger(self._logger)
        bound._context = {**self._context, **context}
        return bound

    @contextmanager
    def timed_operation(self, operation: str, **context):
        """
        Log the start (DEBUG) and the outcome of a block with its duration.

        Success is logged at INFO as ``Completed <operation>``; an exception
        is logged at ERROR as ``Failed <operation>`` and re-raised.
        """
        start_time = time.time()
        self.debug(f"Starting {operation}", **context)

        try:
            yield
        except Exception as e:
            self.error(
                f"Failed {operation}",
                duration_ms=int((time.time() - start_time) * 1000),
                error=str(e),
                **context,
            )
            raise

        self.info(
            f"Completed {operation}",
            duration_ms=int((time.time() - start_time) * 1000),
            **context,
        )


def log_query_execution(
    logger: ContextLogger, query: str, params: tuple | list, row_count: int | None = None
):
    """Debug record for one row fetch: query text (truncated), parameter and row counts."""
    if len(query) > QUERY_PREVIEW_LENGTH:
        query = query[:QUERY_PREVIEW_LENGTH] + "..."

    context: dict[str, Any] = {"query_preview": query, "param_count": len(params or ())}
    if row_count is not None:
        context["row_count"] = row_count

    logger.debug("Executing query", **context)
