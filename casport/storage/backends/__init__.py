"""
Casport Storage Backends.

Available backends:
- memory: In-memory provider for testing and single-session use
- filesystem: Local directory provider (aiofiles)
- sqlite: SQLite embedded provider (aiosqlite)
"""

# These are imported lazily to avoid import errors when dependencies are missing

__all__ = [
    "FilesystemStorageProvider",
    "InMemoryStorageProvider",
    "SQLiteStorageProvider",
]


_BACKEND_IMPORTS = {
    "InMemoryStorageProvider": ("memory", "InMemoryStorageProvider"),
    "FilesystemStorageProvider": ("filesystem", "FilesystemStorageProvider"),
    "SQLiteStorageProvider": ("sqlite", "SQLiteStorageProvider"),
}


def __getattr__(name: str):
    """Lazy import of storage backends."""
    if name in _BACKEND_IMPORTS:
        module_name, class_name = _BACKEND_IMPORTS[name]
        module = __import__(f"casport.storage.backends.{module_name}", fromlist=[class_name])
        return getattr(module, class_name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
