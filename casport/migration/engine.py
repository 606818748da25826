"""
Migration Engine - Bulk transfer between two storage providers.

Enumerates a source provider and moves every item to a target through an
UploadQueue, with bounded concurrency, skip-existing, optional
delete-after-migration, cooperative cancellation and race-free progress.

Usage:
    >>> from casport.migration import MigrationEngine, MigrationOptions
    >>>
    >>> engine = MigrationEngine(source)
    >>> estimate = await engine.estimate()
    >>> print(f"{estimate.item_count} items, ~{estimate.total_size} bytes")
    >>>
    >>> progress = await engine.start(target, MigrationOptions(batch_size=5))
    >>> print(f"{progress.successful_items}/{progress.total_items} migrated")

Lifecycle:
    1. start() moves IDLE → PREPARING and enumerates the source
    2. PREPARING → MIGRATING with total_items known
    3. Up to batch_size transfers run at once; cancel() stops new dispatches
    4. Dispatched transfers finish and are recorded
    5. COMPLETED (or CANCELLED); FAILED only if the source cannot be listed
    6. reset() returns to IDLE
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import TYPE_CHECKING, Any

from casport.content.addresser import ContentAddresser
from casport.content.types import ContentItem
from casport.core.config import CasportConfig, get_config
from casport.core.logger import get_logger
from casport.migration.progress import ProgressSubscription, ProgressTracker
from casport.migration.types import (
    SOURCE_ERROR_PATH,
    MigrationErrorRecord,
    MigrationEstimate,
    MigrationOptions,
    MigrationProgress,
    MigrationStatus,
)
from casport.monitoring.logging import migration_scope
from casport.queue.upload_queue import UploadQueue
from casport.storage.core.errors import IntegrityError, StorageError

if TYPE_CHECKING:
    from casport.content.types import ContentHash
    from casport.monitoring.prometheus import MigrationMetrics
    from casport.queue.storage.base import QueueStorage
    from casport.storage.base import StorageProvider

logger = get_logger(__name__)


class MigrationEngine:
    """
    Orchestrates migration of one source provider's content.

    The engine is reusable: after a run reaches a terminal status, reset()
    makes it ready for the next start().

    Attributes:
        source: Provider content is migrated from
        config: Retry, sampling and throughput settings
    """

    def __init__(
        self,
        source: StorageProvider,
        config: CasportConfig | None = None,
        queue_storage: QueueStorage | None = None,
        metrics: MigrationMetrics | None = None,
        tracker: ProgressTracker | None = None,
    ):
        """
        Args:
            source: Provider to migrate from
            config: Settings (global config by default)
            queue_storage: Persistence for the per-run upload queue
            metrics: Optional Prometheus collector
            tracker: Progress tracker (a fresh one by default)
        """
        self.source = source
        self.config = config or get_config()
        self._queue_storage = queue_storage
        self._metrics = metrics
        self._tracker = tracker or ProgressTracker()
        self._addresser = ContentAddresser(self.config.hash_algorithm)

        self._cancel_requested = False
        self._last_estimate: MigrationEstimate | None = None
        self._target: StorageProvider | None = None
        self._options: MigrationOptions | None = None
        self._queue: UploadQueue | None = None

    # ==========================================================================
    # Observation
    # ==========================================================================

    @property
    def progress(self) -> MigrationProgress:
        return self._tracker.snapshot()

    @property
    def status(self) -> MigrationStatus:
        return self._tracker.status

    @property
    def is_running(self) -> bool:
        return self.status.is_running

    @property
    def last_estimate(self) -> MigrationEstimate | None:
        return self._last_estimate

    def subscribe(self) -> ProgressSubscription:
        """Stream of progress snapshots until the run reaches a terminal status."""
        return self._tracker.subscribe()

    def get_stats(self) -> dict[str, Any]:
        """Status report for the current or last run."""
        progress = self.progress
        return {
            "status": progress.status.value,
            "is_running": progress.status.is_running,
            "percent_complete": round(progress.percent_complete, 1),
            "duration_seconds": progress.duration_seconds,
            "progress": progress.to_dict(),
            "source": self.source.name,
            "target": self._target.name if self._target else None,
            "options": self._options.to_dict() if self._options else None,
            "estimate": self._last_estimate.to_dict() if self._last_estimate else None,
            "queue": self._queue.status().to_dict() if self._queue else None,
        }

    # ==========================================================================
    # Control surface
    # ==========================================================================

    async def estimate(self) -> MigrationEstimate:
        """
        Count source items and estimate their total size without transferring.

        Sizes the first ``estimate_sample_size`` items (every item when it is
        0) and extrapolates the average. Does not change the engine status.

        Raises:
            StorageError: If the source cannot be listed
        """
        hashes = await self.source.list()
        item_count = len(hashes)

        sample_size = self.config.estimate_sample_size
        sample = hashes if sample_size == 0 else hashes[:sample_size]

        sizes: list[int] = []
        for content_hash in sample:
            try:
                sizes.append(await self.source.size(content_hash))
            except StorageError as e:
                logger.warning(f"Could not size {content_hash.short} for estimate: {e}")

        if len(sizes) == item_count:
            total_size = sum(sizes)
        elif sizes:
            total_size = round(sum(sizes) / len(sizes) * item_count)
        else:
            total_size = 0

        estimate = MigrationEstimate(
            item_count=item_count,
            total_size=total_size,
            estimated_time=total_size / self.config.throughput_bytes_per_second,
            sampled_items=len(sizes),
        )
        self._last_estimate = estimate
        logger.info(
            f"Estimated {item_count} items, {total_size} bytes, "
            f"~{estimate.estimated_time:.1f}s from {self.source.name}"
        )
        return estimate

    async def start(
        self,
        target: StorageProvider,
        options: MigrationOptions | None = None,
    ) -> MigrationProgress:
        """
        Migrate every source item to ``target``.

        Returns:
            The final (terminal) progress snapshot

        Raises:
            ValueError: If target is the source provider
            EngineStateError: If the engine is not IDLE
        """
        if target is self.source:
            msg = "Source and target must be different providers"
            raise ValueError(msg)

        options = options or MigrationOptions(batch_size=self.config.batch_size)
        migration_id = f"mig-{uuid.uuid4().hex[:12]}"

        # Raises before touching run state when the engine is not IDLE
        self._tracker.begin(migration_id)
        self._target = target
        self._options = options

        with migration_scope(migration_id=migration_id):
            logger.info(f"Migration {migration_id} started: {self.source.name} → {target.name}")
            try:
                return await self._run(target, options)
            except asyncio.CancelledError:
                if not self.progress.is_terminal:
                    self._finish(MigrationStatus.CANCELLED)
                raise
            except Exception as e:
                if self.progress.is_terminal:
                    raise
                logger.exception(f"Migration {migration_id} aborted: {e}")
                return self._finish(
                    MigrationStatus.FAILED,
                    MigrationErrorRecord(path=SOURCE_ERROR_PATH, error=str(e)),
                )

    def cancel(self) -> None:
        """
        Stop dispatching new transfers.

        In-flight transfers finish and are recorded; the run then ends as
        CANCELLED. A no-op when no migration is running.
        """
        if not self.is_running:
            logger.info(f"Ignoring cancel(): migration is {self.status.value}")
            return
        self._cancel_requested = True
        logger.info("Migration cancellation requested")

    def reset(self) -> None:
        """
        Return a finished engine to IDLE, clearing progress and the estimate.

        Raises:
            EngineStateError: If the engine is not in a terminal status
        """
        self._tracker.reset()
        self._cancel_requested = False
        self._last_estimate = None
        self._target = None
        self._options = None
        self._queue = None

    # ==========================================================================
    # Run
    # ==========================================================================

    async def _run(self, target: StorageProvider, options: MigrationOptions) -> MigrationProgress:
        try:
            hashes = await self.source.list()
        except Exception as e:
            logger.error(f"Cannot enumerate {self.source.name}: {e}")
            return self._finish(
                MigrationStatus.FAILED,
                MigrationErrorRecord(path=SOURCE_ERROR_PATH, error=str(e) or type(e).__name__),
            )

        if options.filter is not None:
            hashes = [h for h in hashes if options.filter(h)]

        if self._cancel_requested:
            return self._finish(MigrationStatus.CANCELLED)

        self._tracker.start_migrating(len(hashes))
        logger.info(f"Migrating {len(hashes)} items with batch size {options.batch_size}")

        queue = UploadQueue(
            target,
            storage=self._queue_storage,
            config=self.config.queue_config(options.batch_size),
        )
        self._queue = queue

        slots = asyncio.Semaphore(options.batch_size)
        dispatched: list[tuple[ContentHash, asyncio.Task]] = []
        try:
            for content_hash in hashes:
                await slots.acquire()
                if self._cancel_requested:
                    slots.release()
                    logger.info(f"Cancelled with {len(hashes) - len(dispatched)} items not dispatched")
                    break
                task = asyncio.create_task(self._migrate_item(content_hash, target, options, queue, slots))
                dispatched.append((content_hash, task))
        finally:
            # Dispatched transfers always run to completion and get recorded
            results = await asyncio.gather(*(task for _, task in dispatched), return_exceptions=True)
            for (content_hash, _), result in zip(dispatched, results, strict=True):
                if isinstance(result, BaseException):
                    logger.error(f"Transfer task for {content_hash.short} crashed: {result!r}")

        status = MigrationStatus.CANCELLED if self._cancel_requested else MigrationStatus.COMPLETED
        return self._finish(status)

    async def _migrate_item(
        self,
        content_hash: ContentHash,
        target: StorageProvider,
        options: MigrationOptions,
        queue: UploadQueue,
        slots: asyncio.Semaphore,
    ) -> None:
        path = content_hash.path
        start = time.perf_counter()
        result = "failed"
        error: str | None = None

        try:
            with migration_scope(item=path):
                self._tracker.set_current_item(path)
                result, error = await self._transfer(content_hash, target, options, queue)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error(f"Migrating {content_hash.short} failed: {error}")
        finally:
            slots.release()

        self._tracker.record_outcome(path, success=result != "failed", error=error)
        if self._metrics:
            duration = None if result == "skipped" else time.perf_counter() - start
            self._metrics.record_item(result, duration)

    async def _transfer(
        self,
        content_hash: ContentHash,
        target: StorageProvider,
        options: MigrationOptions,
        queue: UploadQueue,
    ) -> tuple[str, str | None]:
        """One item: skip, or read → verify → upload → (delete). Returns (result, error)."""
        if options.skip_existing and await target.exists(content_hash):
            logger.debug(f"Skipping {content_hash.short}: already in {target.name}")
            return "skipped", None

        data = await self.source.read(content_hash)
        if not self._addresser.verify(data, content_hash):
            raise IntegrityError(
                f"Source bytes for {content_hash} do not match their hash",
                expected=str(content_hash),
            )

        if self._metrics:
            self._metrics.transfer_started()
        try:
            outcome = await queue.submit(ContentItem.with_hash(content_hash, data))
        finally:
            if self._metrics:
                self._metrics.transfer_finished()

        if self._metrics:
            self._metrics.record_retry(outcome.retry_count)
        await queue.acknowledge(outcome.entry_id)

        if not outcome.succeeded:
            return "failed", outcome.error or "Upload failed"

        if options.delete_after_migration:
            await self._delete_from_source(content_hash)
        return "migrated", None

    async def _delete_from_source(self, content_hash: ContentHash) -> None:
        # Only reached after the target write is confirmed
        try:
            await self.source.delete(content_hash)
        except Exception as e:
            logger.warning(
                f"Migrated {content_hash.short} but could not delete it from {self.source.name}: {e}"
            )

    def _finish(
        self,
        status: MigrationStatus,
        error: MigrationErrorRecord | None = None,
    ) -> MigrationProgress:
        progress = self._tracker.finish(status, error)
        if self._metrics:
            self._metrics.record_run(status.value)

        summary = (
            f"Migration {progress.migration_id} {status.value}: "
            f"{progress.successful_items} succeeded, {progress.failed_items} failed "
            f"of {progress.total_items}"
        )
        if status == MigrationStatus.COMPLETED and not progress.failed_items:
            logger.info(summary)
        else:
            logger.warning(summary)
        return progress
