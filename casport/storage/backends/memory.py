"""
In-Memory Storage Provider - For testing and single-session use.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from casport.content.types import ContentHash
from casport.storage.base import StorageProvider
from casport.storage.core.errors import NotFoundError, QuotaExceededError
from casport.storage.core.health import StorageStatistics

if TYPE_CHECKING:
    from collections.abc import Iterable


class InMemoryStorageProvider(StorageProvider):
    """
    Dict-backed provider keyed by ``ContentHash.path``.

    Safe for concurrent coroutines on one event loop (no operation awaits
    between reading and mutating the dict), not for multiple processes.

    Usage:
        >>> provider = InMemoryStorageProvider(capacity_bytes=1024)
        >>> await provider.write(h, data)
    """

    def __init__(
        self,
        name: str | None = None,
        capacity_bytes: int | None = None,
        initial: Iterable[tuple[ContentHash, bytes]] | None = None,
    ):
        """
        Args:
            name: Display name
            capacity_bytes: Optional quota; writes beyond it raise QuotaExceededError
            initial: Optional (hash, data) pairs to preload
        """
        super().__init__(name=name or "memory")
        self.capacity_bytes = capacity_bytes
        self._blobs: dict[str, bytes] = {}
        self._used_bytes = 0

        for content_hash, data in initial or ():
            self._store(content_hash, bytes(data))

    def _store(self, content_hash: ContentHash, data: bytes) -> None:
        key = content_hash.path
        if key in self._blobs:
            return

        if self.capacity_bytes is not None and self._used_bytes + len(data) > self.capacity_bytes:
            raise QuotaExceededError(
                f"{self.name} is full",
                limit=self.capacity_bytes,
                current=self._used_bytes,
                requested=len(data),
            )

        self._blobs[key] = data
        self._used_bytes += len(data)

    async def write(self, content_hash: ContentHash, data: bytes) -> None:
        self._store(content_hash, bytes(data))
        self._logger.debug(f"Stored {content_hash.short} ({len(data)} bytes) in {self.name}")

    async def read(self, content_hash: ContentHash) -> bytes:
        try:
            return self._blobs[content_hash.path]
        except KeyError:
            raise NotFoundError(
                f"Content {content_hash} not found",
                item_id=content_hash.path,
                provider=self.name,
            ) from None

    async def exists(self, content_hash: ContentHash) -> bool:
        return content_hash.path in self._blobs

    async def list(self) -> list[ContentHash]:
        return [ContentHash.from_path(key) for key in list(self._blobs)]

    async def delete(self, content_hash: ContentHash) -> None:
        data = self._blobs.pop(content_hash.path, None)
        if data is not None:
            self._used_bytes -= len(data)

    async def size(self, content_hash: ContentHash) -> int:
        return len(await self.read(content_hash))

    async def get_statistics(self) -> StorageStatistics:
        return StorageStatistics(
            item_count=len(self._blobs),
            total_bytes=self._used_bytes,
            capacity_bytes=self.capacity_bytes,
        )

    def clear(self) -> None:
        """Remove all content (for testing)."""
        self._blobs.clear()
        self._used_bytes = 0

    def __len__(self) -> int:
        return len(self._blobs)
