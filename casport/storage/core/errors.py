"""
Unified error hierarchy for storage operations.

All storage-related exceptions inherit from StorageError, providing
consistent error handling across providers. Each error class declares
whether the upload queue may retry the operation that raised it.
"""

from typing import Any


class StorageError(Exception):
    """
    Base exception for all storage operations.

    Attributes:
        message: Human-readable description
        details: Backend-specific context (rendered in str())
        retryable: Whether retrying the same operation may succeed
    """

    retryable: bool = True

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in (details or {}).items() if v is not None}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class NotFoundError(StorageError):
    """
    Requested content is not present in the provider.

    Raised by read() and size() for an absent hash.
    """

    retryable = False

    def __init__(
        self,
        message: str = "Content not found",
        item_id: str | None = None,
        provider: str | None = None,
        **details,
    ):
        super().__init__(
            message,
            details={"item_id": item_id, "provider": provider, **details},
        )
        self.item_id = item_id
        self.provider = provider


class StorageIOError(StorageError):
    """
    Transient backend failure.

    Raised when:
    - A file or database operation fails
    - A network call times out
    - The backend is temporarily unavailable
    """

    retryable = True

    def __init__(
        self,
        message: str = "Storage I/O failed",
        operation: str | None = None,
        item_id: str | None = None,
        provider: str | None = None,
        **details,
    ):
        super().__init__(
            message,
            details={
                "operation": operation,
                "item_id": item_id,
                "provider": provider,
                **details,
            },
        )
        self.operation = operation
        self.item_id = item_id
        self.provider = provider


class QuotaExceededError(StorageError):
    """
    Target storage is full.

    Not retryable: the same write will keep failing until space is freed.
    """

    retryable = False

    def __init__(
        self,
        message: str = "Storage quota exceeded",
        limit: int | None = None,
        current: int | None = None,
        requested: int | None = None,
        **details,
    ):
        super().__init__(
            message,
            details={"limit": limit, "current": current, "requested": requested, **details},
        )
        self.limit = limit
        self.current = current
        self.requested = requested


class IntegrityError(StorageError):
    """Bytes do not hash to the content hash they were stored under."""

    retryable = False

    def __init__(
        self,
        message: str = "Content integrity check failed",
        expected: str | None = None,
        actual: str | None = None,
        **details,
    ):
        super().__init__(
            message,
            details={"expected": expected, "actual": actual, **details},
        )
        self.expected = expected
        self.actual = actual


class SerializationError(StorageError):
    """
    Failed to serialize or deserialize a persisted record.
    """

    retryable = False

    def __init__(
        self,
        message: str = "Serialization failed",
        operation: str | None = None,
        data_type: str | None = None,
        **details,
    ):
        super().__init__(
            message,
            details={"operation": operation, "data_type": data_type, **details},
        )
        self.operation = operation
        self.data_type = data_type


def is_retryable(error: BaseException) -> bool:
    """
    Decide whether a failed transfer attempt may be retried.

    StorageErrors carry their own flag; anything else (OSError, TimeoutError,
    driver-specific exceptions) is treated as a transient failure.
    """
    if isinstance(error, StorageError):
        return error.retryable
    return isinstance(error, Exception)
