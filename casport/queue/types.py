"""
Upload queue types.

A QueueEntry wraps one ContentItem on its way to a target provider. The
queue persists entries so an interrupted process can resume, and retries
failed transfers with exponential backoff.

Quick Start:
    >>> from casport.queue import QueueEntry, RetryPolicy
    >>>
    >>> entry = QueueEntry(content=ContentItem.from_bytes(b"hello"))
    >>> policy = RetryPolicy(max_retries=5, base_delay_seconds=1.0)
    >>> policy.delay_for(3)
    4.0
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from casport.content.types import ContentHash, ContentItem, ContentMetadata


class QueueEntryStatus(Enum):
    """
    Status of a queue entry in its lifecycle.

    State transitions:
        PENDING → IN_FLIGHT → SUCCEEDED
           ↑          ↓
           └── retry ─┤
                      ↓
                   FAILED
    """

    PENDING = "pending"
    """Waiting for a transfer attempt (new, or backing off after a failure)"""

    IN_FLIGHT = "in_flight"
    """A transfer attempt is running"""

    SUCCEEDED = "succeeded"
    """Target write confirmed"""

    FAILED = "failed"
    """Retries exhausted or non-retryable error; only retry_failed() requeues it"""

    @property
    def is_terminal(self) -> bool:
        return self in (QueueEntryStatus.SUCCEEDED, QueueEntryStatus.FAILED)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt (0 = single attempt)
        base_delay_seconds: Delay before the first retry
        multiplier: Growth factor per retry
        max_delay_seconds: Cap for a single delay
    """

    max_retries: int = 3
    base_delay_seconds: float = 0.5
    multiplier: float = 2.0
    max_delay_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            msg = f"max_retries must be >= 0, got {self.max_retries}"
            raise ValueError(msg)
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            msg = "retry delays must be >= 0"
            raise ValueError(msg)
        if self.multiplier < 1:
            msg = f"multiplier must be >= 1, got {self.multiplier}"
            raise ValueError(msg)

    def delay_for(self, retry_count: int) -> float:
        """Seconds to wait before attempt number ``retry_count + 1``."""
        if retry_count <= 0:
            return 0.0
        delay = self.base_delay_seconds * self.multiplier ** (retry_count - 1)
        return min(delay, self.max_delay_seconds)


@dataclass(frozen=True)
class QueueConfig:
    """
    Attributes:
        max_concurrent: Maximum transfer attempts running at once
        retry_policy: Backoff and retry ceiling
    """

    max_concurrent: int = 3
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            msg = f"max_concurrent must be >= 1, got {self.max_concurrent}"
            raise ValueError(msg)


@dataclass
class QueueEntry:
    """
    One pending or finished transfer.

    Mutated only by the UploadQueue (through QueueStateMachine).

    Attributes:
        content: The item to transfer
        id: Unique entry identifier
        status: Current lifecycle status
        retry_count: Failed attempts that were retried
        last_error: Message of the most recent failure
        next_attempt_at: Earliest time the entry may be claimed again
    """

    content: ContentItem
    id: str = field(default_factory=lambda: f"upload-{uuid.uuid4().hex[:16]}")
    status: QueueEntryStatus = QueueEntryStatus.PENDING
    retry_count: int = 0
    last_error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    next_attempt_at: datetime | None = None

    @property
    def content_hash(self) -> ContentHash:
        return self.content.hash

    @property
    def key(self) -> str:
        """Per-content serialization key (at most one attempt in flight per key)."""
        return self.content.hash.path

    def is_ready(self, now: datetime | None = None) -> bool:
        """Pending and past its backoff delay."""
        if self.status != QueueEntryStatus.PENDING:
            return False
        if self.next_attempt_at is None:
            return True
        return self.next_attempt_at <= (now or datetime.now(UTC))

    def to_record(self) -> dict[str, Any]:
        """Minimal durable representation."""
        return {
            "id": self.id,
            "content_hash": str(self.content_hash),
            "status": self.status.value,
            "retry_count": self.retry_count,
            "last_error": self.last_error,
        }

    def to_dict(self) -> dict[str, Any]:
        """Full representation without the item bytes."""
        return {
            **self.to_record(),
            "size": self.content.size,
            "content_type": self.content.metadata.content_type,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "next_attempt_at": self.next_attempt_at.isoformat() if self.next_attempt_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], content: bytes) -> "QueueEntry":
        """Rebuild an entry from ``to_dict()`` output and the stored bytes."""
        content_hash = ContentHash.parse(data["content_hash"])
        created_at = cls._parse_datetime(data.get("created_at")) or datetime.now(UTC)
        item = ContentItem(
            hash=content_hash,
            data=content,
            metadata=ContentMetadata(
                hash=content_hash,
                size=len(content),
                created_at=created_at,
                content_type=data.get("content_type"),
            ),
        )
        return cls(
            content=item,
            id=data["id"],
            status=QueueEntryStatus(data.get("status", "pending")),
            retry_count=data.get("retry_count", 0),
            last_error=data.get("last_error"),
            created_at=created_at,
            updated_at=cls._parse_datetime(data.get("updated_at")) or created_at,
            next_attempt_at=cls._parse_datetime(data.get("next_attempt_at")),
        )

    @staticmethod
    def _parse_datetime(value: str | datetime | None) -> datetime | None:
        if isinstance(value, str):
            return datetime.fromisoformat(value)
        return value


@dataclass(frozen=True)
class ProcessOutcome:
    """
    Result of a single transfer attempt.

    ``status`` is PENDING when the attempt failed and a retry is scheduled.
    """

    entry_id: str
    content_hash: ContentHash
    status: QueueEntryStatus
    retry_count: int
    error: str | None = None
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == QueueEntryStatus.SUCCEEDED

    @property
    def will_retry(self) -> bool:
        return self.status == QueueEntryStatus.PENDING


@dataclass(frozen=True)
class QueueStatus:
    """Entry counts by status."""

    total: int = 0
    pending: int = 0
    in_flight: int = 0
    succeeded: int = 0
    failed: int = 0

    @property
    def is_idle(self) -> bool:
        return self.pending == 0 and self.in_flight == 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "pending": self.pending,
            "in_flight": self.in_flight,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }
