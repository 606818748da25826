"""
Upload queue persistence backends.
"""

from casport.queue.storage.base import QueueStorage
from casport.queue.storage.memory import InMemoryQueueStorage


def __getattr__(name: str):
    """Lazy import of the SQLite backend."""
    if name == "SQLiteQueueStorage":
        from casport.queue.storage.sqlite import SQLiteQueueStorage

        return SQLiteQueueStorage

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)


__all__ = ["InMemoryQueueStorage", "QueueStorage", "SQLiteQueueStorage"]
