"""
Migration: estimate, run, cancel and observe bulk transfers between providers.

Quick Start:
    >>> from casport.migration import MigrationEngine, MigrationOptions
    >>>
    >>> engine = MigrationEngine(source)
    >>> progress = await engine.start(target, MigrationOptions(batch_size=5))
"""

from casport.migration.engine import MigrationEngine
from casport.migration.progress import ProgressSubscription, ProgressTracker
from casport.migration.state_machine import MigrationStateMachine
from casport.migration.types import (
    SOURCE_ERROR_PATH,
    MigrationErrorRecord,
    MigrationEstimate,
    MigrationOptions,
    MigrationProgress,
    MigrationStatus,
)

__all__ = [
    "SOURCE_ERROR_PATH",
    "MigrationEngine",
    "MigrationErrorRecord",
    "MigrationEstimate",
    "MigrationOptions",
    "MigrationProgress",
    "MigrationStateMachine",
    "MigrationStatus",
    "ProgressSubscription",
    "ProgressTracker",
]
