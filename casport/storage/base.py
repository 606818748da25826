"""
Storage provider interface.

A StorageProvider is a uniform, content-addressed blob store. Any backend
(in-memory map, local directory, embedded database, distributed network
node) implementing the five contract operations can act as the source or
the target of a migration.

Contract:
    - write(hash, data): idempotent; writing a hash that is already present
      is a successful no-op and never creates a second physical copy
    - read(hash): raises NotFoundError for an absent hash
    - exists(hash) / list() / delete(hash)

All operations are coroutines. Implementations must be safe to call
concurrently for *different* hashes; callers serialize operations on the
*same* hash (the UploadQueue does this).
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from casport.core.logger import get_logger
from casport.storage.core.health import HealthCheckResult, HealthStatus, StorageStatistics

if TYPE_CHECKING:
    from casport.content.types import ContentHash


class StorageProvider(ABC):
    """
    Abstract content-addressed storage backend.

    Subclasses must implement write/read/exists/list/delete. size(),
    health_check(), get_statistics() and close() have working defaults that
    backends may override with cheaper lookups.

    Usage:
        >>> provider = InMemoryStorageProvider()
        >>> h = ContentAddresser().hash(b"data")
        >>> await provider.write(h, b"data")
        >>> assert await provider.exists(h)
        >>> assert await provider.read(h) == b"data"
    """

    def __init__(self, name: str | None = None):
        self._name = name or self.__class__.__name__
        self._logger = get_logger(f"casport.storage.{self.__class__.__name__}")
        self._closed = False

    @property
    def name(self) -> str:
        """Display name used in logs and CLI output."""
        return self._name

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ==========================================================================
    # Contract
    # ==========================================================================

    @abstractmethod
    async def write(self, content_hash: ContentHash, data: bytes) -> None:
        """
        Store ``data`` under ``content_hash``.

        Raises:
            QuotaExceededError: If the backend is full
            StorageIOError: On transient backend failure
        """
        ...

    @abstractmethod
    async def read(self, content_hash: ContentHash) -> bytes:
        """
        Return the bytes stored under ``content_hash``.

        Raises:
            NotFoundError: If the hash is not present
        """
        ...

    @abstractmethod
    async def exists(self, content_hash: ContentHash) -> bool:
        """Check whether ``content_hash`` is stored."""
        ...

    @abstractmethod
    async def list(self) -> list[ContentHash]:
        """Enumerate every stored hash (no ordering guarantee)."""
        ...

    @abstractmethod
    async def delete(self, content_hash: ContentHash) -> None:
        """Remove ``content_hash``; deleting an absent hash is a no-op."""
        ...

    # ==========================================================================
    # Optional operations
    # ==========================================================================

    async def size(self, content_hash: ContentHash) -> int:
        """
        Size in bytes of the stored blob.

        The default reads the whole blob; backends override this.

        Raises:
            NotFoundError: If the hash is not present
        """
        return len(await self.read(content_hash))

    async def get_statistics(self) -> StorageStatistics:
        """Item count and byte usage (default walks list() and size())."""
        hashes = await self.list()
        total = 0
        for content_hash in hashes:
            total += await self.size(content_hash)
        return StorageStatistics(item_count=len(hashes), total_bytes=total)

    async def health_check(self) -> HealthCheckResult:
        """
        Check that the provider answers a cheap request.

        Backends with connections should override this.
        """
        if self._closed:
            return HealthCheckResult(
                status=HealthStatus.UNHEALTHY,
                latency_ms=0,
                message="Provider is closed",
            )

        start = time.perf_counter()
        try:
            await self.list()
        except Exception as e:
            return HealthCheckResult(
                status=HealthStatus.UNHEALTHY,
                latency_ms=(time.perf_counter() - start) * 1000,
                message=f"{self.name} is not responding: {e}",
                details={"error_type": type(e).__name__},
            )
        return HealthCheckResult(
            status=HealthStatus.HEALTHY,
            latency_ms=(time.perf_counter() - start) * 1000,
            message=f"{self.name} is healthy",
        )

    async def close(self) -> None:
        """Release resources. The provider should not be used afterwards."""
        self._closed = True

    async def __aenter__(self) -> StorageProvider:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name!r}>"
