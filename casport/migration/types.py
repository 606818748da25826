"""
Migration types.

Quick Start:
    >>> from casport.migration import MigrationOptions
    >>>
    >>> options = MigrationOptions(batch_size=5, delete_after_migration=True)
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from casport.content.types import ContentHash

SOURCE_ERROR_PATH = "<source>"


class MigrationStatus(Enum):
    """
    Status of a migration run.

    State transitions:
        IDLE → PREPARING → MIGRATING → COMPLETED
                   ↓           ↓
                 FAILED ← ─ ─ ─┤
                   ↓           ↓
               CANCELLED ← ─ ─ ┘

    Every terminal status returns to IDLE only through reset().
    """

    IDLE = "idle"
    PREPARING = "preparing"
    MIGRATING = "migrating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (MigrationStatus.COMPLETED, MigrationStatus.FAILED, MigrationStatus.CANCELLED)

    @property
    def is_running(self) -> bool:
        return self in (MigrationStatus.PREPARING, MigrationStatus.MIGRATING)


@dataclass(frozen=True)
class MigrationErrorRecord:
    """
    One failed item (or a run-level failure).

    Attributes:
        path: The item's ``cas/<algorithm>/<value>`` path, or "<source>"
              when enumerating the source failed
        error: Error message
    """

    path: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "error": self.error}


@dataclass(frozen=True)
class MigrationProgress:
    """
    Immutable progress snapshot.

    Always holds: processed_items == successful_items + failed_items and
    processed_items <= total_items.
    """

    total_items: int = 0
    processed_items: int = 0
    successful_items: int = 0
    failed_items: int = 0
    status: MigrationStatus = MigrationStatus.IDLE
    current_item: str | None = None
    errors: tuple[MigrationErrorRecord, ...] = ()
    migration_id: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def percent_complete(self) -> float:
        if self.total_items == 0:
            return 100.0 if self.status == MigrationStatus.COMPLETED else 0.0
        return self.processed_items / self.total_items * 100

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None:
            return None
        end = self.finished_at or datetime.now(self.started_at.tzinfo)
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "migration_id": self.migration_id,
            "total_items": self.total_items,
            "processed_items": self.processed_items,
            "successful_items": self.successful_items,
            "failed_items": self.failed_items,
            "status": self.status.value,
            "current_item": self.current_item,
            "errors": [e.to_dict() for e in self.errors],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass(frozen=True)
class MigrationOptions:
    """
    Per-run options, fixed for the duration of a run.

    Attributes:
        batch_size: Maximum transfers in flight at once
        delete_after_migration: Delete each item from the source once its
            target write is confirmed
        skip_existing: Count items already in the target as successful
            without writing them
        filter: Optional predicate selecting which source items to migrate
    """

    batch_size: int = 10
    delete_after_migration: bool = False
    skip_existing: bool = True
    filter: Callable[[ContentHash], bool] | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            msg = f"batch_size must be >= 1, got {self.batch_size}"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_size": self.batch_size,
            "delete_after_migration": self.delete_after_migration,
            "skip_existing": self.skip_existing,
            "filtered": self.filter is not None,
        }


@dataclass(frozen=True)
class MigrationEstimate:
    """
    Result of estimate().

    Attributes:
        item_count: Number of items in the source
        total_size: Total bytes (exact, or extrapolated from a sample)
        estimated_time: Seconds at the configured throughput
        sampled_items: Items actually sized to produce total_size
    """

    item_count: int
    total_size: int
    estimated_time: float
    sampled_items: int = 0

    @property
    def is_exact(self) -> bool:
        return self.sampled_items >= self.item_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_count": self.item_count,
            "total_size": self.total_size,
            "estimated_time": self.estimated_time,
            "sampled_items": self.sampled_items,
            "is_exact": self.is_exact,
        }
