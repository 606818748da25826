"""
Queue State Machine - Manages upload queue entry lifecycle transitions.

Ensures entries transition through valid states only and applies the
retry policy when an attempt fails.

State Diagram:

    ┌─────────┐
    │ PENDING │ ←──────────────────────┐
    └────┬────┘                        │
         │ claim()                     │ retry (retryable and
         ▼                             │        retries < max)
    ┌───────────┐                      │
    │ IN_FLIGHT │ ─────────────────────┘
    └─────┬─────┘
          │
     ┌────┴─────┐
     ▼          ▼
┌───────────┐ ┌────────┐
│ SUCCEEDED │ │ FAILED │ ── requeue() ──→ PENDING
└───────────┘ └────────┘
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from casport.core.exceptions import QueueStateError
from casport.queue.types import QueueEntry, QueueEntryStatus, RetryPolicy


class QueueStateMachine:
    """
    State machine for queue entry lifecycle.

    Valid Transitions:
        PENDING → IN_FLIGHT (via claim)
        IN_FLIGHT → SUCCEEDED (via mark_succeeded)
        IN_FLIGHT → PENDING (via record_failure while retries remain, or release)
        IN_FLIGHT → FAILED (via record_failure once retries are exhausted)
        FAILED → PENDING (via requeue, an explicit caller decision)

    Usage:
        >>> sm = QueueStateMachine(RetryPolicy(max_retries=3))
        >>> entry = sm.claim(entry)
        >>> try:
        ...     await target.write(entry.content_hash, entry.content.data)
        ...     entry = sm.mark_succeeded(entry)
        ... except Exception as e:
        ...     entry = sm.record_failure(entry, str(e), retryable=is_retryable(e))
    """

    # Valid transitions: from_status -> [to_status, ...]
    VALID_TRANSITIONS = {
        QueueEntryStatus.PENDING: [QueueEntryStatus.IN_FLIGHT],
        QueueEntryStatus.IN_FLIGHT: [
            QueueEntryStatus.SUCCEEDED,
            QueueEntryStatus.PENDING,
            QueueEntryStatus.FAILED,
        ],
        QueueEntryStatus.SUCCEEDED: [],  # Terminal state
        QueueEntryStatus.FAILED: [QueueEntryStatus.PENDING],  # Only via requeue
    }

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        on_transition: Callable[[QueueEntry, QueueEntryStatus, QueueEntryStatus], Any] | None = None,
    ):
        """
        Args:
            retry_policy: Retry ceiling and backoff delays
            on_transition: Optional callback for state transitions
        """
        self.retry_policy = retry_policy or RetryPolicy()
        self._on_transition = on_transition

    @property
    def max_retries(self) -> int:
        return self.retry_policy.max_retries

    def _transition(self, entry: QueueEntry, target_status: QueueEntryStatus) -> QueueEntry:
        old_status = entry.status
        if target_status not in self.VALID_TRANSITIONS.get(old_status, []):
            raise QueueStateError(entry.id, old_status, target_status)

        entry.status = target_status
        entry.updated_at = datetime.now(UTC)

        if self._on_transition:
            self._on_transition(entry, old_status, target_status)

        return entry

    def claim(self, entry: QueueEntry) -> QueueEntry:
        """
        Claim a pending entry for a transfer attempt.

        Raises:
            QueueStateError: If entry is not PENDING
        """
        entry = self._transition(entry, QueueEntryStatus.IN_FLIGHT)
        entry.next_attempt_at = None
        return entry

    def mark_succeeded(self, entry: QueueEntry) -> QueueEntry:
        """
        Raises:
            QueueStateError: If entry is not IN_FLIGHT
        """
        entry = self._transition(entry, QueueEntryStatus.SUCCEEDED)
        entry.last_error = None
        return entry

    def record_failure(self, entry: QueueEntry, error_message: str, retryable: bool = True) -> QueueEntry:
        """
        Apply the retry policy to a failed attempt.

        A retryable failure below the ceiling increments retry_count and
        schedules the next attempt; anything else is permanently FAILED.
        retry_count never exceeds max_retries.

        Raises:
            QueueStateError: If entry is not IN_FLIGHT
        """
        entry.last_error = error_message

        if retryable and self.can_retry(entry):
            entry = self._transition(entry, QueueEntryStatus.PENDING)
            entry.retry_count += 1
            delay = self.retry_policy.delay_for(entry.retry_count)
            entry.next_attempt_at = entry.updated_at + timedelta(seconds=delay)
            return entry

        return self._transition(entry, QueueEntryStatus.FAILED)

    def release(self, entry: QueueEntry) -> QueueEntry:
        """
        Return an interrupted IN_FLIGHT entry to PENDING without counting a retry.

        Raises:
            QueueStateError: If entry is not IN_FLIGHT
        """
        entry = self._transition(entry, QueueEntryStatus.PENDING)
        entry.next_attempt_at = None
        return entry

    def requeue(self, entry: QueueEntry) -> QueueEntry:
        """
        Give a FAILED entry a fresh retry budget.

        Raises:
            QueueStateError: If entry is not FAILED
        """
        entry = self._transition(entry, QueueEntryStatus.PENDING)
        entry.retry_count = 0
        entry.last_error = None
        entry.next_attempt_at = None
        return entry

    def can_retry(self, entry: QueueEntry) -> bool:
        return entry.retry_count < self.max_retries
