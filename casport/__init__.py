"""
casport - Content-addressed storage and migration between storage providers

Every blob is identified by the hash of its bytes. Any backend that
implements the StorageProvider contract (write/read/exists/list/delete) can
be a migration source or target, and the MigrationEngine moves content
between two of them with:
- Bounded concurrency and per-item retries with exponential backoff
- Skip-existing idempotence (re-running a finished migration writes nothing)
- Optional delete-from-source once each target write is confirmed
- Cooperative cancellation
- Race-free progress snapshots you can subscribe to

Quick Start:
    >>> from casport import ContentStore, MigrationEngine, MigrationOptions, create_provider
    >>>
    >>> local = create_provider("sqlite", path="./local.db")
    >>> h = await ContentStore(local).store(b"hello")
    >>>
    >>> remote = create_provider("filesystem", path="./blobs")
    >>> engine = MigrationEngine(local)
    >>> print(await engine.estimate())
    >>> progress = await engine.start(remote, MigrationOptions(batch_size=5))
"""

from casport.content import ContentAddresser, ContentHash, ContentItem, ContentMetadata, ContentStore
from casport.core import (
    CasportConfig,
    CasportError,
    EngineStateError,
    MissingDependencyError,
    QueueStateError,
    configure,
    get_config,
    get_logger,
    set_logger,
)
from casport.migration import (
    MigrationEngine,
    MigrationErrorRecord,
    MigrationEstimate,
    MigrationOptions,
    MigrationProgress,
    MigrationStatus,
    ProgressTracker,
)
from casport.queue import QueueConfig, QueueEntry, QueueEntryStatus, RetryPolicy, UploadQueue
from casport.storage import (
    InMemoryStorageProvider,
    NotFoundError,
    QuotaExceededError,
    StorageError,
    StorageIOError,
    StorageProvider,
    create_provider,
    provider_from_uri,
)

__version__ = "0.1.0"

__all__ = [
    "CasportConfig",
    "CasportError",
    "ContentAddresser",
    "ContentHash",
    "ContentItem",
    "ContentMetadata",
    "ContentStore",
    "EngineStateError",
    "InMemoryStorageProvider",
    "MigrationEngine",
    "MigrationErrorRecord",
    "MigrationEstimate",
    "MigrationOptions",
    "MigrationProgress",
    "MigrationStatus",
    "MissingDependencyError",
    "NotFoundError",
    "ProgressTracker",
    "QueueConfig",
    "QueueEntry",
    "QueueEntryStatus",
    "QueueStateError",
    "QuotaExceededError",
    "RetryPolicy",
    "StorageError",
    "StorageIOError",
    "StorageProvider",
    "UploadQueue",
    "configure",
    "get_config",
    "get_logger",
    "set_logger",
]
