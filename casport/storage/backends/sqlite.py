"""
SQLite Storage Provider.

Lightweight embedded content-addressed store. Ideal for local migration
sources and targets, testing, and single-process tools.

Usage:
    >>> from casport.storage.backends.sqlite import SQLiteStorageProvider
    >>>
    >>> # File-based storage
    >>> provider = SQLiteStorageProvider("./data/blobs.db")
    >>>
    >>> # In-memory storage (for testing)
    >>> provider = SQLiteStorageProvider(":memory:")
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from datetime import UTC, datetime

try:
    import aiosqlite

    AIOSQLITE_AVAILABLE = True
except ImportError:  # pragma: no cover
    AIOSQLITE_AVAILABLE = False
    aiosqlite = None

from casport.content.types import ContentHash
from casport.core.exceptions import MissingDependencyError
from casport.storage.base import StorageProvider
from casport.storage.core.errors import NotFoundError, QuotaExceededError, StorageIOError
from casport.storage.core.health import HealthCheckResult, HealthStatus, StorageStatistics


class SQLiteStorageProvider(StorageProvider):
    """
    SQLite-based content-addressed provider.

    Attributes:
        db_path: Path to SQLite database file (or ":memory:" for in-memory)
        max_bytes: Optional quota on the sum of stored blob sizes

    Example:
        >>> provider = SQLiteStorageProvider("./blobs.db")
        >>> async with provider:
        ...     await provider.write(h, b"hello")
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        max_bytes: int | None = None,
        name: str | None = None,
    ):
        """
        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory
            max_bytes: Optional quota; writes beyond it raise QuotaExceededError
            name: Display name (defaults to "sqlite://<db_path>")
        """
        if not AIOSQLITE_AVAILABLE:  # pragma: no cover
            raise MissingDependencyError("aiosqlite", "SQLite storage")

        super().__init__(name=name or f"sqlite://{db_path}")
        self.db_path = db_path
        self.max_bytes = max_bytes
        self._conn: aiosqlite.Connection | None = None
        self._initialized = False
        # Quota check and insert must not interleave between coroutines
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize storage (create connection and schema)."""
        await self._get_connection()

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._conn is None:
            try:
                self._conn = await aiosqlite.connect(self.db_path)
            except sqlite3.Error as e:
                raise StorageIOError(
                    f"Cannot open {self.db_path}: {e}",
                    operation="connect",
                    provider=self.name,
                ) from e
            self._conn.row_factory = aiosqlite.Row
            self._closed = False

        if not self._initialized:
            await self._init_schema()
            self._initialized = True

        return self._conn

    async def _init_schema(self) -> None:
        """Initialize database schema."""
        await self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS cas_blobs (
                algorithm TEXT NOT NULL,
                digest TEXT NOT NULL,
                data BLOB NOT NULL,
                size INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (algorithm, digest)
            );
        """)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            self._initialized = False
        await super().close()

    async def __aenter__(self) -> SQLiteStorageProvider:
        await self._get_connection()
        return self

    def _io_error(self, error: sqlite3.Error, operation: str, content_hash: ContentHash | None = None):
        if isinstance(error, sqlite3.OperationalError) and "full" in str(error).lower():
            return QuotaExceededError(
                f"{self.name} is full: {error}",
                item_id=content_hash.path if content_hash else None,
            )
        return StorageIOError(
            f"{operation} failed: {error}",
            operation=operation,
            item_id=content_hash.path if content_hash else None,
            provider=self.name,
        )

    async def _used_bytes(self, conn: aiosqlite.Connection) -> int:
        async with conn.execute("SELECT COALESCE(SUM(size), 0) FROM cas_blobs") as cursor:
            row = await cursor.fetchone()
        return row[0]

    async def write(self, content_hash: ContentHash, data: bytes) -> None:
        conn = await self._get_connection()
        data = bytes(data)

        async with self._write_lock:
            try:
                if self.max_bytes is not None and not await self.exists(content_hash):
                    used = await self._used_bytes(conn)
                    if used + len(data) > self.max_bytes:
                        raise QuotaExceededError(
                            f"{self.name} is full",
                            limit=self.max_bytes,
                            current=used,
                            requested=len(data),
                        )

                await conn.execute(
                    """
                    INSERT OR IGNORE INTO cas_blobs (algorithm, digest, data, size, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        content_hash.algorithm,
                        content_hash.value,
                        data,
                        len(data),
                        datetime.now(UTC).isoformat(),
                    ),
                )
                await conn.commit()
            except sqlite3.Error as e:
                raise self._io_error(e, "write", content_hash) from e

        self._logger.debug(f"Stored {content_hash.short} ({len(data)} bytes) in {self.name}")

    async def read(self, content_hash: ContentHash) -> bytes:
        conn = await self._get_connection()
        try:
            async with conn.execute(
                "SELECT data FROM cas_blobs WHERE algorithm = ? AND digest = ?",
                (content_hash.algorithm, content_hash.value),
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise self._io_error(e, "read", content_hash) from e

        if row is None:
            raise NotFoundError(
                f"Content {content_hash} not found",
                item_id=content_hash.path,
                provider=self.name,
            )
        return bytes(row["data"])

    async def exists(self, content_hash: ContentHash) -> bool:
        conn = await self._get_connection()
        try:
            async with conn.execute(
                "SELECT 1 FROM cas_blobs WHERE algorithm = ? AND digest = ?",
                (content_hash.algorithm, content_hash.value),
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise self._io_error(e, "exists", content_hash) from e
        return row is not None

    async def list(self) -> list[ContentHash]:
        conn = await self._get_connection()
        try:
            async with conn.execute(
                "SELECT algorithm, digest FROM cas_blobs ORDER BY created_at"
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise self._io_error(e, "list") from e
        return [ContentHash(algorithm=row["algorithm"], value=row["digest"]) for row in rows]

    async def delete(self, content_hash: ContentHash) -> None:
        conn = await self._get_connection()
        try:
            await conn.execute(
                "DELETE FROM cas_blobs WHERE algorithm = ? AND digest = ?",
                (content_hash.algorithm, content_hash.value),
            )
            await conn.commit()
        except sqlite3.Error as e:
            raise self._io_error(e, "delete", content_hash) from e

    async def size(self, content_hash: ContentHash) -> int:
        conn = await self._get_connection()
        async with conn.execute(
            "SELECT size FROM cas_blobs WHERE algorithm = ? AND digest = ?",
            (content_hash.algorithm, content_hash.value),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise NotFoundError(
                f"Content {content_hash} not found",
                item_id=content_hash.path,
                provider=self.name,
            )
        return row["size"]

    async def get_statistics(self) -> StorageStatistics:
        conn = await self._get_connection()
        async with conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(size), 0) FROM cas_blobs"
        ) as cursor:
            row = await cursor.fetchone()
        return StorageStatistics(
            item_count=row[0],
            total_bytes=row[1],
            capacity_bytes=self.max_bytes,
        )

    async def health_check(self) -> HealthCheckResult:
        start = time.perf_counter()
        try:
            conn = await self._get_connection()
            async with conn.execute("SELECT 1") as cursor:
                await cursor.fetchone()
            return HealthCheckResult(
                status=HealthStatus.HEALTHY,
                latency_ms=(time.perf_counter() - start) * 1000,
                message="SQLite connection healthy",
                details={"db_path": self.db_path},
            )
        except Exception as e:
            return HealthCheckResult(
                status=HealthStatus.UNHEALTHY,
                latency_ms=(time.perf_counter() - start) * 1000,
                message=f"SQLite health check failed: {e}",
                details={"db_path": self.db_path},
            )
