"""
Structured logging for migration runs

JSON formatting and context propagation so every log line emitted while a
migration runs carries its migration id and, inside a transfer, the item.
"""

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variables for propagating migration context
migration_context: ContextVar[dict[str, Any]] = ContextVar("migration_context", default={})


class MigrationJsonFormatter(logging.Formatter):
    """
    JSON formatter for migration logs with structured fields
    """

    # Fields to extract from log record if present
    _EXTRA_FIELDS = (
        "migration_id",
        "item",
        "source",
        "target",
        "duration_ms",
        "retry_count",
        "error_type",
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""
        log_entry = self._build_base_entry(record)
        self._add_migration_context(log_entry)
        self._add_record_extras(log_entry, record)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)

    def _build_base_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

    def _add_migration_context(self, log_entry: dict[str, Any]) -> None:
        context = migration_context.get({})
        for key in ("migration_id", "item"):
            if context.get(key) is not None:
                log_entry[key] = context[key]

    def _add_record_extras(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self._EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)


class MigrationContextFilter(logging.Filter):
    """
    Logging filter that adds migration context to log records
    """

    def filter(self, record: logging.LogRecord) -> bool:
        context = migration_context.get({})
        record.migration_id = context.get("migration_id", "")
        record.item = context.get("item", "")
        return True


@contextmanager
def migration_scope(**fields: Any):
    """
    Extend the migration context for the duration of a block.

    Each asyncio task gets its own copy of the context, so a per-item scope
    set inside a transfer task never leaks into sibling transfers.

    Example:
        >>> with migration_scope(migration_id="mig-1a2b"):
        ...     logger.info("Migration started")
    """
    token = migration_context.set({**migration_context.get({}), **fields})
    try:
        yield
    finally:
        migration_context.reset(token)

