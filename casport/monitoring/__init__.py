"""
Monitoring: structured logging and Prometheus metrics for migrations.
"""

from casport.monitoring.logging import (
    MigrationContextFilter,
    MigrationJsonFormatter,
    migration_context,
    migration_scope,
)


def __getattr__(name: str):
    """Lazy import of the Prometheus integration."""
    if name in ("MigrationMetrics", "start_metrics_server"):
        from casport.monitoring import prometheus

        return getattr(prometheus, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = [
    "MigrationContextFilter",
    "MigrationJsonFormatter",
    "MigrationMetrics",
    "migration_context",
    "migration_scope",
    "start_metrics_server",
]
