"""
SQLite Queue Storage.

Persists upload queue entries, including the item bytes, so a queue can be
reloaded after a restart.

Usage:
    >>> storage = SQLiteQueueStorage("./data/queue.db")
    >>> queue = UploadQueue(target, storage=storage)
    >>> await queue.recover()
"""

from __future__ import annotations

import json
import sqlite3
from typing import TYPE_CHECKING

try:
    import aiosqlite

    AIOSQLITE_AVAILABLE = True
except ImportError:  # pragma: no cover
    AIOSQLITE_AVAILABLE = False
    aiosqlite = None

from casport.core.exceptions import MissingDependencyError
from casport.core.logger import get_logger
from casport.queue.storage.base import QueueStorage
from casport.queue.types import QueueEntry, QueueEntryStatus
from casport.storage.core.errors import SerializationError, StorageIOError

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = get_logger(__name__)


class SQLiteQueueStorage(QueueStorage):
    """
    SQLite-based queue storage.

    Attributes:
        db_path: Path to SQLite database file (or ":memory:" for in-memory)
    """

    def __init__(self, db_path: str = ":memory:"):
        if not AIOSQLITE_AVAILABLE:  # pragma: no cover
            raise MissingDependencyError("aiosqlite", "SQLite queue storage")

        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize storage (create connection and schema)."""
        await self._get_connection()

    async def _get_connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            self._conn = await aiosqlite.connect(self.db_path)
            self._conn.row_factory = aiosqlite.Row

        if not self._initialized:
            await self._conn.executescript("""
                CREATE TABLE IF NOT EXISTS upload_queue (
                    id TEXT PRIMARY KEY,
                    content_hash TEXT NOT NULL,
                    status TEXT NOT NULL,
                    retry_count INTEGER NOT NULL DEFAULT 0,
                    last_error TEXT,
                    created_at TEXT NOT NULL,
                    record TEXT NOT NULL,
                    data BLOB NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_upload_queue_status ON upload_queue(status);
                CREATE INDEX IF NOT EXISTS idx_upload_queue_created_at ON upload_queue(created_at);
            """)
            await self._conn.commit()
            self._initialized = True

        return self._conn

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            self._initialized = False

    async def __aenter__(self) -> SQLiteQueueStorage:
        await self._get_connection()
        return self

    async def save(self, entry: QueueEntry) -> None:
        conn = await self._get_connection()
        try:
            record = json.dumps(entry.to_dict())
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"Cannot encode queue entry {entry.id}: {e}",
                operation="serialize",
                data_type="QueueEntry",
            ) from e

        try:
            await conn.execute(
                """
                INSERT OR REPLACE INTO upload_queue (
                    id, content_hash, status, retry_count, last_error, created_at, record, data
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    str(entry.content_hash),
                    entry.status.value,
                    entry.retry_count,
                    entry.last_error,
                    entry.created_at.isoformat(),
                    record,
                    entry.content.data,
                ),
            )
            await conn.commit()
        except sqlite3.Error as e:
            raise StorageIOError(
                f"Saving queue entry failed: {e}",
                operation="save",
                item_id=entry.id,
                provider=f"sqlite://{self.db_path}",
            ) from e

    def _row_to_entry(self, row: aiosqlite.Row) -> QueueEntry:
        try:
            return QueueEntry.from_dict(json.loads(row["record"]), bytes(row["data"]))
        except (KeyError, TypeError, ValueError) as e:
            raise SerializationError(
                f"Cannot decode queue entry {row['id']}: {e}",
                operation="deserialize",
                data_type="QueueEntry",
            ) from e

    async def get(self, entry_id: str) -> QueueEntry | None:
        conn = await self._get_connection()
        async with conn.execute(
            "SELECT id, record, data FROM upload_queue WHERE id = ?", (entry_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_entry(row) if row else None

    async def list(self, statuses: Iterable[QueueEntryStatus] | None = None) -> list[QueueEntry]:
        conn = await self._get_connection()
        query = "SELECT id, record, data FROM upload_queue"
        params: list[str] = []

        if statuses is not None:
            values = [s.value for s in statuses]
            if not values:
                return []
            query += f" WHERE status IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        query += " ORDER BY created_at"

        async with conn.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_entry(row) for row in rows]

    async def delete(self, entry_id: str) -> bool:
        conn = await self._get_connection()
        cursor = await conn.execute("DELETE FROM upload_queue WHERE id = ?", (entry_id,))
        await conn.commit()
        return cursor.rowcount > 0

    async def count_by_status(self) -> dict[QueueEntryStatus, int]:
        conn = await self._get_connection()
        async with conn.execute(
            "SELECT status, COUNT(*) AS n FROM upload_queue GROUP BY status"
        ) as cursor:
            rows = await cursor.fetchall()
        return {QueueEntryStatus(row["status"]): row["n"] for row in rows}
