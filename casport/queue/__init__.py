"""
Upload queue: durable, retrying per-item transfers.

Quick Start:
    >>> from casport.queue import UploadQueue, QueueConfig, RetryPolicy
    >>>
    >>> queue = UploadQueue(
    ...     target,
    ...     config=QueueConfig(max_concurrent=3, retry_policy=RetryPolicy(max_retries=5)),
    ... )
    >>> outcome = await queue.submit(item)
"""

from casport.queue.state_machine import QueueStateMachine
from casport.queue.storage import InMemoryQueueStorage, QueueStorage
from casport.queue.types import (
    ProcessOutcome,
    QueueConfig,
    QueueEntry,
    QueueEntryStatus,
    QueueStatus,
    RetryPolicy,
)
from casport.queue.upload_queue import UploadQueue

__all__ = [
    "InMemoryQueueStorage",
    "ProcessOutcome",
    "QueueConfig",
    "QueueEntry",
    "QueueEntryStatus",
    "QueueStateMachine",
    "QueueStatus",
    "QueueStorage",
    "RetryPolicy",
    "UploadQueue",
]
