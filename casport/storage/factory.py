"""
Storage Factory - Simplified API for creating storage providers

Lets the CLI and callers pick a backend by name or URI without importing
provider classes directly:

    memory://                 -> InMemoryStorageProvider
    file://./blobs            -> FilesystemStorageProvider
    sqlite://./blobs.db       -> SQLiteStorageProvider
"""

from typing import Any

from casport.core.exceptions import MissingDependencyError
from casport.storage.backends.memory import InMemoryStorageProvider
from casport.storage.base import StorageProvider


def _create_filesystem_provider(kwargs: dict) -> StorageProvider:
    """Create filesystem provider instance."""
    from casport.storage.backends.filesystem import FilesystemStorageProvider

    return FilesystemStorageProvider(
        base_path=kwargs.get("path") or "./casport-data",
        name=kwargs.get("name"),
    )


def _create_sqlite_provider(kwargs: dict) -> StorageProvider:
    """Create SQLite provider instance."""
    from casport.storage.backends.sqlite import SQLiteStorageProvider

    return SQLiteStorageProvider(
        db_path=kwargs.get("path") or ":memory:",
        max_bytes=kwargs.get("max_bytes"),
        name=kwargs.get("name"),
    )


def _create_memory_provider(kwargs: dict) -> StorageProvider:
    return InMemoryStorageProvider(
        name=kwargs.get("name"),
        capacity_bytes=kwargs.get("max_bytes"),
    )


# Provider registry mapping backend names to factory functions
_PROVIDER_REGISTRY = {
    "memory": _create_memory_provider,
    "filesystem": _create_filesystem_provider,
    "file": _create_filesystem_provider,
    "fs": _create_filesystem_provider,
    "sqlite": _create_sqlite_provider,
}


def create_provider(
    backend: str = "memory",
    *,
    path: str | None = None,
    max_bytes: int | None = None,
    name: str | None = None,
    **kwargs,
) -> StorageProvider:
    """
    Create a storage provider with a simple, unified API.

    Args:
        backend: "memory", "filesystem" (aliases "file", "fs"), or "sqlite"
        path: Directory (filesystem) or database file (sqlite)
        max_bytes: Optional quota (memory and sqlite backends)
        name: Display name override
        **kwargs: Additional backend-specific options

    Returns:
        Configured StorageProvider instance

    Raises:
        ValueError: If an unknown backend is specified
        MissingDependencyError: If required packages aren't installed

    Examples:
        >>> source = create_provider("sqlite", path="./old.db")
        >>> target = create_provider("filesystem", path="./blobs")
    """
    backend = backend.lower().strip()

    if backend not in _PROVIDER_REGISTRY:
        msg = (
            f"Unknown storage backend: '{backend}'\n"
            f"Available backends: {', '.join(sorted(get_available_backends()))}"
        )
        raise ValueError(msg)

    factory_kwargs = {"path": path, "max_bytes": max_bytes, "name": name, **kwargs}
    try:
        return _PROVIDER_REGISTRY[backend](factory_kwargs)
    except ImportError as e:  # pragma: no cover
        raise MissingDependencyError(e.name or backend, f"{backend} storage") from e


def provider_from_uri(uri: str, **kwargs) -> StorageProvider:
    """
    Create a provider from a ``scheme://location`` string.

    Examples:
        >>> provider_from_uri("memory://")
        >>> provider_from_uri("file://./blobs")
        >>> provider_from_uri("sqlite://./blobs.db")
    """
    scheme, sep, location = uri.partition("://")
    if not sep:
        msg = f"Invalid storage URI '{uri}' (expected scheme://location)"
        raise ValueError(msg)
    return create_provider(scheme, path=location or None, **kwargs)


def get_available_backends() -> dict[str, dict[str, Any]]:
    """
    Get information about available storage backends.

    Returns:
        Dictionary of backend name to availability, description and install hint

    Example:
        >>> for name, info in get_available_backends().items():
        ...     status = "✓" if info["available"] else "✗"
        ...     print(f"{status} {name}: {info['description']}")
    """
    backends = {
        "memory": {
            "available": True,
            "description": "In-memory storage (no persistence)",
            "install": None,
            "uri": "memory://",
        }
    }

    try:
        import aiofiles  # noqa: F401

        backends["filesystem"] = {
            "available": True,
            "description": "Local directory, one file per blob",
            "install": None,
            "uri": "file://<directory>",
        }
    except ImportError:  # pragma: no cover
        backends["filesystem"] = {
            "available": False,
            "description": "Local directory, one file per blob",
            "install": "pip install aiofiles",
            "uri": "file://<directory>",
        }

    try:
        import aiosqlite  # noqa: F401

        backends["sqlite"] = {
            "available": True,
            "description": "SQLite embedded database",
            "install": None,
            "uri": "sqlite://<database file>",
        }
    except ImportError:  # pragma: no cover
        backends["sqlite"] = {
            "available": False,
            "description": "SQLite embedded database",
            "install": "pip install aiosqlite",
            "uri": "sqlite://<database file>",
        }

    return backends
