"""
Progress tracking for migration runs.

ProgressTracker owns the single authoritative MigrationProgress snapshot.
Every mutation is one read-modify-write under a lock, producing a new frozen
snapshot, so two transfers finishing in the same scheduling tick each land
their increment and no observer ever sees a half-applied update.

Usage:
    >>> tracker = ProgressTracker()
    >>> tracker.begin("mig-1")
    >>> tracker.start_migrating(total_items=2)
    >>> tracker.record_outcome("cas/sha256/ab..", success=True)
    >>> tracker.snapshot().processed_items
    1

    >>> async with tracker.subscribe() as updates:
    ...     async for progress in updates:
    ...         print(progress.percent_complete)
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from casport.core.exceptions import EngineStateError
from casport.core.logger import get_logger
from casport.migration.state_machine import MigrationStateMachine
from casport.migration.types import MigrationErrorRecord, MigrationProgress, MigrationStatus

logger = get_logger(__name__)


class ProgressSubscription:
    """
    Async iterator over progress snapshots.

    Starts with the snapshot current at subscription time and ends after
    delivering a terminal snapshot, or when closed.
    """

    def __init__(self, tracker: ProgressTracker):
        self._tracker = tracker
        self._queue: asyncio.Queue[MigrationProgress | None] = asyncio.Queue()
        self._finished = False

    def _deliver(self, progress: MigrationProgress | None) -> None:
        self._queue.put_nowait(progress)

    def __aiter__(self) -> ProgressSubscription:
        return self

    async def __anext__(self) -> MigrationProgress:
        if self._finished:
            raise StopAsyncIteration

        progress = await self._queue.get()
        if progress is None:
            self._finished = True
            raise StopAsyncIteration
        if progress.is_terminal:
            self._finished = True
            self._tracker._unsubscribe(self)
        return progress

    def close(self) -> None:
        """Detach from the tracker; iteration ends after queued snapshots."""
        if self._tracker._unsubscribe(self):
            self._deliver(None)

    async def __aenter__(self) -> ProgressSubscription:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class ProgressTracker:
    """
    Single owner of migration progress.

    All mutators validate the status transition first and raise
    EngineStateError on an illegal one. A terminal snapshot is immutable
    until reset().
    """

    def __init__(self):
        # Reentrant so listeners may call snapshot()
        self._lock = threading.RLock()
        self._progress = MigrationProgress()
        self._subscriptions: list[ProgressSubscription] = []
        self._listeners: list[Callable[[MigrationProgress], Any]] = []

    # ==========================================================================
    # Reading
    # ==========================================================================

    def snapshot(self) -> MigrationProgress:
        """The current progress (frozen; safe to keep)."""
        with self._lock:
            return self._progress

    @property
    def status(self) -> MigrationStatus:
        return self.snapshot().status

    def subscribe(self) -> ProgressSubscription:
        """Stream of snapshots, one per state change. Must be used on the event loop."""
        subscription = ProgressSubscription(self)
        with self._lock:
            self._subscriptions.append(subscription)
            subscription._deliver(self._progress)
        return subscription

    def _unsubscribe(self, subscription: ProgressSubscription) -> bool:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
                return True
            return False

    def add_listener(self, callback: Callable[[MigrationProgress], Any]) -> None:
        """Register a synchronous callback invoked with every new snapshot."""
        with self._lock:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[MigrationProgress], Any]) -> None:
        with self._lock:
            if callback in self._listeners:
                self._listeners.remove(callback)

    # ==========================================================================
    # Mutators
    # ==========================================================================

    def begin(self, migration_id: str | None = None) -> MigrationProgress:
        """IDLE → PREPARING with zeroed counters."""
        with self._lock:
            self._require_transition(MigrationStatus.PREPARING, "start")
            return self._commit(
                MigrationProgress(
                    status=MigrationStatus.PREPARING,
                    migration_id=migration_id,
                    started_at=datetime.now(UTC),
                )
            )

    def start_migrating(self, total_items: int) -> MigrationProgress:
        """PREPARING → MIGRATING once the source has been enumerated."""
        if total_items < 0:
            msg = f"total_items must be >= 0, got {total_items}"
            raise ValueError(msg)
        with self._lock:
            self._require_transition(MigrationStatus.MIGRATING, "begin migrating")
            return self._commit(
                replace(self._progress, status=MigrationStatus.MIGRATING, total_items=total_items)
            )

    def set_current_item(self, item_id: str | None) -> MigrationProgress:
        with self._lock:
            self._require_status(MigrationStatus.MIGRATING, "update current item")
            if self._progress.current_item == item_id:
                return self._progress
            return self._commit(replace(self._progress, current_item=item_id))

    def record_outcome(self, item_id: str, success: bool, error: str | None = None) -> MigrationProgress:
        """
        Count one finished item.

        The whole increment happens in one critical section.

        Raises:
            EngineStateError: If not MIGRATING, or every item is already counted
        """
        with self._lock:
            current = self._require_status(MigrationStatus.MIGRATING, "record an item outcome")
            if current.processed_items >= current.total_items:
                raise EngineStateError(
                    "record an item outcome",
                    current.status,
                    f"All {current.total_items} items already recorded",
                )

            if success:
                updated = replace(
                    current,
                    processed_items=current.processed_items + 1,
                    successful_items=current.successful_items + 1,
                    current_item=item_id,
                )
            else:
                updated = replace(
                    current,
                    processed_items=current.processed_items + 1,
                    failed_items=current.failed_items + 1,
                    current_item=item_id,
                    errors=(
                        *current.errors,
                        MigrationErrorRecord(path=item_id, error=error or "Unknown error"),
                    ),
                )
            return self._commit(updated)

    def finish(self, status: MigrationStatus, error: MigrationErrorRecord | None = None) -> MigrationProgress:
        """Move to a terminal status, optionally attaching a run-level error."""
        if not status.is_terminal:
            msg = f"finish() needs a terminal status, got {status.value}"
            raise ValueError(msg)

        with self._lock:
            self._require_transition(status, f"finish as {status.value}")
            errors = self._progress.errors if error is None else (*self._progress.errors, error)
            return self._commit(
                replace(
                    self._progress,
                    status=status,
                    current_item=None,
                    errors=errors,
                    finished_at=datetime.now(UTC),
                )
            )

    def reset(self) -> MigrationProgress:
        """Terminal → IDLE with a fresh snapshot."""
        with self._lock:
            self._require_transition(MigrationStatus.IDLE, "reset")
            return self._commit(MigrationProgress())

    # ==========================================================================
    # Internals (call with the lock held)
    # ==========================================================================

    def _require_transition(self, target: MigrationStatus, operation: str) -> None:
        MigrationStateMachine.validate(self._progress.status, target, operation)

    def _require_status(self, status: MigrationStatus, operation: str) -> MigrationProgress:
        if self._progress.status != status:
            raise EngineStateError(operation, self._progress.status)
        return self._progress

    def _commit(self, progress: MigrationProgress) -> MigrationProgress:
        self._progress = progress

        for subscription in list(self._subscriptions):
            subscription._deliver(progress)
        if progress.is_terminal:
            # Terminal subscribers drain their queue and end on their own
            self._subscriptions.clear()

        for callback in list(self._listeners):
            try:
                callback(progress)
            except Exception as e:
                logger.error(f"Progress listener {callback!r} failed: {e}")

        return progress
