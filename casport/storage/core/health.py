"""
Health check infrastructure for storage providers.

Provides consistent health reporting across all provider types.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class HealthStatus(Enum):
    """Storage health status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"  # Working but with issues
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """
    Result of a health check operation.

    Attributes:
        status: Overall health status
        latency_ms: Time taken for health check in milliseconds
        message: Human-readable status message
        details: Additional backend-specific details
        checked_at: Timestamp of the check
    """

    status: HealthStatus
    latency_ms: float
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_healthy(self) -> bool:
        """Check if status is healthy or degraded (still operational)."""
        return self.status in (HealthStatus.HEALTHY, HealthStatus.DEGRADED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "is_healthy": self.is_healthy,
            "latency_ms": round(self.latency_ms, 2),
            "message": self.message,
            "details": self.details,
            "checked_at": self.checked_at.isoformat(),
        }


@dataclass
class StorageStatistics:
    """
    Provider usage statistics.

    Attributes:
        item_count: Number of stored blobs
        total_bytes: Sum of stored blob sizes
        capacity_bytes: Configured quota, if any
    """

    item_count: int = 0
    total_bytes: int = 0
    capacity_bytes: int | None = None

    @property
    def free_bytes(self) -> int | None:
        if self.capacity_bytes is None:
            return None
        return max(self.capacity_bytes - self.total_bytes, 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_count": self.item_count,
            "total_bytes": self.total_bytes,
            "capacity_bytes": self.capacity_bytes,
            "free_bytes": self.free_bytes,
        }


async def check_health_with_timeout(checker: Any, timeout_seconds: float = 5.0) -> HealthCheckResult:
    """
    Perform a health check with timeout protection.

    Args:
        checker: Any object with an async health_check() method
        timeout_seconds: Maximum time to wait

    Returns:
        HealthCheckResult (UNHEALTHY on timeout or error)
    """
    start = time.perf_counter()

    try:
        return await asyncio.wait_for(checker.health_check(), timeout=timeout_seconds)
    except TimeoutError:
        elapsed_ms = (time.perf_counter() - start) * 1000
        return HealthCheckResult(
            status=HealthStatus.UNHEALTHY,
            latency_ms=elapsed_ms,
            message=f"Health check timed out after {timeout_seconds}s",
        )
    except Exception as e:
        elapsed_ms = (time.perf_counter() - start) * 1000
        return HealthCheckResult(
            status=HealthStatus.UNHEALTHY,
            latency_ms=elapsed_ms,
            message=f"Health check failed: {e}",
            details={"error": str(e), "error_type": type(e).__name__},
        )
