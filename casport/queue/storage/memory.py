"""
In-Memory Queue Storage - For testing and single-process runs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from casport.queue.storage.base import QueueStorage

if TYPE_CHECKING:
    from collections.abc import Iterable

    from casport.queue.types import QueueEntry, QueueEntryStatus


class InMemoryQueueStorage(QueueStorage):
    """
    Dict-backed queue storage. Nothing survives the process.

    Usage:
        >>> storage = InMemoryQueueStorage()
        >>> await storage.save(entry)
    """

    def __init__(self):
        self._entries: dict[str, QueueEntry] = {}

    async def save(self, entry: QueueEntry) -> None:
        self._entries[entry.id] = entry

    async def get(self, entry_id: str) -> QueueEntry | None:
        return self._entries.get(entry_id)

    async def list(self, statuses: Iterable[QueueEntryStatus] | None = None) -> list[QueueEntry]:
        wanted = set(statuses) if statuses is not None else None
        entries = [e for e in self._entries.values() if wanted is None or e.status in wanted]
        return sorted(entries, key=lambda e: e.created_at)

    async def delete(self, entry_id: str) -> bool:
        return self._entries.pop(entry_id, None) is not None

    def clear(self) -> None:
        """Remove all entries (for testing)."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
