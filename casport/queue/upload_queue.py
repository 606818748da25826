"""
Upload Queue - Durable, retrying transfer queue.

Buffers content items on their way to a target provider, persists every
entry change through a QueueStorage, and retries failed writes with
bounded exponential backoff.

Usage:
    >>> from casport.queue import UploadQueue
    >>>
    >>> queue = UploadQueue(target, config=QueueConfig(max_concurrent=3))
    >>> entry_id = await queue.enqueue(item)
    >>> outcome = await queue.process_next()
    >>>
    >>> # Or drive one item to a terminal state (what the migration engine does)
    >>> outcome = await queue.submit(item)

Guarantees:
    - At most one transfer attempt in flight per content hash
    - At most ``max_concurrent`` attempts in flight overall
    - retry_count never exceeds the policy's max_retries; exhausted entries
      are FAILED and keep their last error until retry_failed() requeues them
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from casport.core.exceptions import QueueStateError
from casport.core.logger import get_logger
from casport.queue.state_machine import QueueStateMachine
from casport.queue.storage.memory import InMemoryQueueStorage
from casport.queue.types import (
    ProcessOutcome,
    QueueConfig,
    QueueEntry,
    QueueEntryStatus,
    QueueStatus,
)
from casport.storage.core.errors import is_retryable

if TYPE_CHECKING:
    from casport.content.types import ContentItem
    from casport.queue.storage.base import QueueStorage
    from casport.storage.base import StorageProvider

logger = get_logger(__name__)


class UploadQueue:
    """
    Retrying upload queue bound to one target provider.

    Lifecycle of an entry:
        1. enqueue() persists a PENDING entry
        2. process_next()/submit() claim it (IN_FLIGHT) and write to the target
        3. Success → SUCCEEDED; retryable failure below the ceiling → PENDING
           with a backoff delay; otherwise → FAILED
        4. acknowledge() or clear_completed() removes terminal entries;
           retry_failed() gives FAILED entries a fresh retry budget
    """

    def __init__(
        self,
        target: StorageProvider,
        storage: QueueStorage | None = None,
        config: QueueConfig | None = None,
        on_update: Callable[[QueueEntry], Any] | None = None,
    ):
        """
        Args:
            target: Provider every entry is written to
            storage: Entry persistence (in-memory by default)
            config: Concurrency and retry policy
            on_update: Called with the entry after every change
        """
        self.target = target
        self.storage = storage or InMemoryQueueStorage()
        self.config = config or QueueConfig()
        self._state_machine = QueueStateMachine(
            self.config.retry_policy,
            on_transition=self._log_transition,
        )
        self._on_update = on_update

        # Insertion ordered: iteration yields the oldest entry first
        self._entries: dict[str, QueueEntry] = {}
        self._inflight_keys: set[str] = set()
        self._condition = asyncio.Condition()
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent)

    # ==========================================================================
    # Enqueueing
    # ==========================================================================

    async def enqueue(self, item: ContentItem) -> str:
        """Add a PENDING entry for ``item`` and persist it. Returns the entry id."""
        entry = QueueEntry(content=item)
        await self._persist(entry)
        async with self._condition:
            self._entries[entry.id] = entry
            self._condition.notify_all()

        logger.debug(f"Enqueued {entry.id} for {item.hash.short}")
        return entry.id

    async def enqueue_many(self, items: Iterable[ContentItem]) -> list[str]:
        return [await self.enqueue(item) for item in items]

    # ==========================================================================
    # Processing
    # ==========================================================================

    async def process_next(self) -> ProcessOutcome | None:
        """
        Claim the oldest ready entry and make one transfer attempt.

        Returns:
            The attempt's outcome, or None if no entry is ready
        """
        async with self._semaphore:
            entry = await self._claim_next()
            if entry is None:
                return None
            return await self._attempt(entry)

    async def submit(self, item: ContentItem) -> ProcessOutcome:
        """
        Enqueue ``item`` and drive it to a terminal state.

        Waits out backoff delays between attempts. Returns the final
        outcome (SUCCEEDED or FAILED).
        """
        entry_id = await self.enqueue(item)
        return await self.wait_for(entry_id)

    async def wait_for(self, entry_id: str) -> ProcessOutcome:
        """
        Drive an existing entry to a terminal state.

        Raises:
            KeyError: If the entry is unknown
        """
        entry = self._entries[entry_id]
        outcome: ProcessOutcome | None = None

        while not entry.status.is_terminal:
            if entry.id not in self._entries:
                return ProcessOutcome(
                    entry_id=entry.id,
                    content_hash=entry.content_hash,
                    status=QueueEntryStatus.FAILED,
                    retry_count=entry.retry_count,
                    error="Upload cancelled",
                )

            delay = self._seconds_until_ready(entry)
            if delay > 0:
                await asyncio.sleep(delay)

            async with self._semaphore:
                if await self._claim(entry):
                    outcome = await self._attempt(entry)

        if outcome is None or outcome.status != entry.status:
            outcome = self._outcome(entry)
        return outcome

    async def drain(self) -> list[ProcessOutcome]:
        """Process entries until none is PENDING or IN_FLIGHT."""
        outcomes: list[ProcessOutcome] = []

        async def worker() -> None:
            while True:
                outcome = await self.process_next()
                if outcome is not None:
                    outcomes.append(outcome)
                    continue
                if not await self._wait_for_work():
                    return

        await asyncio.gather(*(worker() for _ in range(self.config.max_concurrent)))
        return outcomes

    async def _wait_for_work(self) -> bool:
        """Block until an entry may become claimable. False once the queue is idle."""
        async with self._condition:
            active = [e for e in self._entries.values() if not e.status.is_terminal]
            if not active:
                return False

            pending = [e for e in active if e.status == QueueEntryStatus.PENDING]
            if any(e.is_ready() and e.key not in self._inflight_keys for e in pending):
                return True
            delays = [self._seconds_until_ready(e) for e in pending]
            waiting = [d for d in delays if d > 0]
            timeout = min(waiting) if waiting else None
            try:
                await asyncio.wait_for(self._condition.wait(), timeout)
            except TimeoutError:
                pass
            return True

    async def _claim_next(self) -> QueueEntry | None:
        async with self._condition:
            now = datetime.now(UTC)
            for entry in self._entries.values():
                if entry.is_ready(now) and entry.key not in self._inflight_keys:
                    self._take(entry)
                    break
            else:
                return None
        await self._persist(entry)
        return entry

    async def _claim(self, entry: QueueEntry) -> bool:
        """Claim a specific entry, waiting while another attempt holds its key."""
        async with self._condition:
            await self._condition.wait_for(
                lambda: entry.status != QueueEntryStatus.IN_FLIGHT
                and entry.key not in self._inflight_keys
            )
            if entry.id not in self._entries or not entry.is_ready():
                return False
            self._take(entry)
        await self._persist(entry)
        return True

    def _take(self, entry: QueueEntry) -> None:
        self._state_machine.claim(entry)
        self._inflight_keys.add(entry.key)

    async def _attempt(self, entry: QueueEntry) -> ProcessOutcome:
        """Write an IN_FLIGHT entry to the target and apply the result."""
        start = time.perf_counter()
        error_message: str | None = None

        try:
            await self.target.write(entry.content_hash, entry.content.data)
        except Exception as e:
            error_message = str(e) or type(e).__name__
            self._state_machine.record_failure(entry, error_message, retryable=is_retryable(e))
            if entry.status == QueueEntryStatus.PENDING:
                logger.warning(
                    f"Upload {entry.id} ({entry.content_hash.short}) failed, "
                    f"retry {entry.retry_count}/{self._state_machine.max_retries}: {error_message}"
                )
            else:
                logger.error(
                    f"Upload {entry.id} ({entry.content_hash.short}) failed permanently: {error_message}"
                )
        else:
            self._state_machine.mark_succeeded(entry)
        finally:
            if entry.status == QueueEntryStatus.IN_FLIGHT:
                # Interrupted (task cancelled) before a result was recorded
                self._state_machine.release(entry)
            await self._release(entry)

        return self._outcome(entry, error=error_message, duration_ms=(time.perf_counter() - start) * 1000)

    async def _release(self, entry: QueueEntry) -> None:
        await self._persist(entry)
        async with self._condition:
            self._inflight_keys.discard(entry.key)
            self._condition.notify_all()

    # ==========================================================================
    # Management
    # ==========================================================================

    async def recover(self) -> int:
        """
        Reload persisted entries after a restart.

        Entries left IN_FLIGHT by an interrupted process go back to PENDING
        without counting a retry.

        Returns:
            Number of non-terminal entries now waiting in the queue
        """
        recovered = 0
        for entry in await self.storage.list():
            if entry.id in self._entries:
                continue
            if entry.status == QueueEntryStatus.IN_FLIGHT:
                self._state_machine.release(entry)
                await self._persist(entry)
            if not entry.status.is_terminal:
                recovered += 1
            self._entries[entry.id] = entry

        async with self._condition:
            self._condition.notify_all()

        if recovered:
            logger.info(f"Recovered {recovered} unfinished uploads")
        return recovered

    async def acknowledge(self, entry_id: str) -> bool:
        """
        Remove a terminal entry.

        Returns:
            False if the entry is unknown

        Raises:
            QueueStateError: If the entry is not SUCCEEDED or FAILED
        """
        entry = self._entries.get(entry_id)
        if entry is None:
            return False
        if not entry.status.is_terminal:
            raise QueueStateError(entry_id, entry.status)

        del self._entries[entry_id]
        await self.storage.delete(entry_id)
        return True

    async def cancel(self, entry_id: str) -> bool:
        """Remove a PENDING entry. Returns False if it is unknown or not PENDING."""
        async with self._condition:
            entry = self._entries.get(entry_id)
            if entry is None or entry.status != QueueEntryStatus.PENDING:
                return False
            del self._entries[entry_id]
            self._condition.notify_all()

        await self.storage.delete(entry_id)
        logger.info(f"Cancelled upload {entry_id}")
        return True

    async def retry_failed(self) -> int:
        """
        Put every FAILED entry back to PENDING with a fresh retry budget.

        Returns:
            Number of entries requeued
        """
        async with self._condition:
            failed = [e for e in self._entries.values() if e.status == QueueEntryStatus.FAILED]
            for entry in failed:
                self._state_machine.requeue(entry)

        for entry in failed:
            await self._persist(entry)

        async with self._condition:
            self._condition.notify_all()

        if failed:
            logger.info(f"Requeued {len(failed)} failed uploads")
        return len(failed)

    async def clear_completed(self) -> int:
        """Remove all SUCCEEDED entries. Returns how many were removed."""
        done = [e.id for e in self._entries.values() if e.status == QueueEntryStatus.SUCCEEDED]
        for entry_id in done:
            del self._entries[entry_id]
            await self.storage.delete(entry_id)
        return len(done)

    def get_entry(self, entry_id: str) -> QueueEntry | None:
        return self._entries.get(entry_id)

    def status(self) -> QueueStatus:
        counts = dict.fromkeys(QueueEntryStatus, 0)
        for entry in self._entries.values():
            counts[entry.status] += 1
        return QueueStatus(
            total=len(self._entries),
            pending=counts[QueueEntryStatus.PENDING],
            in_flight=counts[QueueEntryStatus.IN_FLIGHT],
            succeeded=counts[QueueEntryStatus.SUCCEEDED],
            failed=counts[QueueEntryStatus.FAILED],
        )

    def __len__(self) -> int:
        return len(self._entries)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _persist(self, entry: QueueEntry) -> None:
        await self.storage.save(entry)
        if self._on_update:
            try:
                self._on_update(entry)
            except Exception as e:
                logger.error(f"on_update callback failed for {entry.id}: {e}")

    @staticmethod
    def _seconds_until_ready(entry: QueueEntry) -> float:
        if entry.next_attempt_at is None:
            return 0.0
        return max((entry.next_attempt_at - datetime.now(UTC)).total_seconds(), 0.0)

    @staticmethod
    def _outcome(
        entry: QueueEntry,
        error: str | None = None,
        duration_ms: float = 0.0,
    ) -> ProcessOutcome:
        return ProcessOutcome(
            entry_id=entry.id,
            content_hash=entry.content_hash,
            status=entry.status,
            retry_count=entry.retry_count,
            error=error if error is not None else entry.last_error,
            duration_ms=duration_ms,
        )

    @staticmethod
    def _log_transition(entry: QueueEntry, old: QueueEntryStatus, new: QueueEntryStatus) -> None:
        logger.debug(f"Upload {entry.id}: {old.value} → {new.value}")
