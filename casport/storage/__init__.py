"""
Casport storage layer.

Content-addressed providers that can act as migration source or target.

Quick Start:
    >>> from casport.storage import create_provider
    >>> provider = create_provider("sqlite", path="./blobs.db")
"""

from casport.storage.backends.memory import InMemoryStorageProvider
from casport.storage.base import StorageProvider
from casport.storage.core import (
    HealthCheckResult,
    HealthStatus,
    IntegrityError,
    NotFoundError,
    QuotaExceededError,
    SerializationError,
    StorageError,
    StorageIOError,
    StorageStatistics,
    is_retryable,
)
from casport.storage.factory import create_provider, get_available_backends, provider_from_uri

__all__ = [
    "HealthCheckResult",
    "HealthStatus",
    "InMemoryStorageProvider",
    "IntegrityError",
    "NotFoundError",
    "QuotaExceededError",
    "SerializationError",
    "StorageError",
    "StorageIOError",
    "StorageProvider",
    "StorageStatistics",
    "create_provider",
    "get_available_backends",
    "is_retryable",
    "provider_from_uri",
]
