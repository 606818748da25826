"""
Queue persistence interface.

The UploadQueue saves every entry change through a QueueStorage so that an
interrupted process can reload its queue and resume.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from casport.queue.types import QueueEntry, QueueEntryStatus


class QueueStorage(ABC):
    """
    Abstract durable store for queue entries.

    Usage:
        >>> storage = SQLiteQueueStorage("./queue.db")
        >>> await storage.save(entry)
        >>> pending = await storage.list([QueueEntryStatus.PENDING])
    """

    @abstractmethod
    async def save(self, entry: QueueEntry) -> None:
        """Insert or replace an entry."""
        ...

    @abstractmethod
    async def get(self, entry_id: str) -> QueueEntry | None:
        """Load an entry by id (None if absent)."""
        ...

    @abstractmethod
    async def list(self, statuses: Iterable[QueueEntryStatus] | None = None) -> list[QueueEntry]:
        """Entries (optionally filtered by status), oldest first."""
        ...

    @abstractmethod
    async def delete(self, entry_id: str) -> bool:
        """Remove an entry. Returns True if it existed."""
        ...

    async def count_by_status(self) -> dict[QueueEntryStatus, int]:
        """Entry counts keyed by status (default walks list())."""
        counts: dict[QueueEntryStatus, int] = {}
        for entry in await self.list():
            counts[entry.status] = counts.get(entry.status, 0) + 1
        return counts

    async def close(self) -> None:  # noqa: B027
        """Release resources."""

    async def __aenter__(self) -> QueueStorage:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
