"""
casport storage core: shared error hierarchy and health infrastructure.
"""

from .errors import (
    IntegrityError,
    NotFoundError,
    QuotaExceededError,
    SerializationError,
    StorageError,
    StorageIOError,
    is_retryable,
)
from .health import (
    HealthCheckResult,
    HealthStatus,
    StorageStatistics,
    check_health_with_timeout,
)

__all__ = [
    "HealthCheckResult",
    "HealthStatus",
    "IntegrityError",
    "NotFoundError",
    "QuotaExceededError",
    "SerializationError",
    "StorageError",
    "StorageIOError",
    "StorageStatistics",
    "check_health_with_timeout",
    "is_retryable",
]
