"""
CasportConfig - Unified configuration for casport.

Provides a single, type-safe configuration object that feeds:
- Content addressing (hash algorithm)
- The upload queue (concurrency and retry/backoff policy)
- The migration engine (batch size, estimate sampling, throughput)
- Logging

Values come from constructor arguments or, via ``from_env()``, from
``CASPORT_*`` environment variables (a ``.env`` file in the working
directory is loaded first).

Example:
    >>> from casport import CasportConfig, configure
    >>>
    >>> config = CasportConfig(batch_size=20, max_retries=5)
    >>> configure(config)
    >>>
    >>> # Or from the environment
    >>> config = CasportConfig.from_env()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from casport.core.env import EnvManager, get_env

if TYPE_CHECKING:
    from casport.queue.types import QueueConfig, RetryPolicy

logger = logging.getLogger(__name__)

ONE_MIB = 1024 * 1024


@dataclass
class CasportConfig:
    """
    Unified configuration for casport.

    Attributes:
        hash_algorithm: Digest used for new content hashes
        batch_size: Default maximum number of concurrent transfers
        max_retries: Retry ceiling for a single queue entry
        retry_base_delay_seconds: Backoff delay after the first failure
        retry_multiplier: Backoff growth factor per retry
        retry_max_delay_seconds: Upper bound for a single backoff delay
        estimate_sample_size: Items sized by estimate() (0 = size every item)
        throughput_bytes_per_second: Assumed transfer rate for time estimates
        log_level: Level for the 'casport' logger namespace
        log_format: "text" or "json"
    """

    hash_algorithm: str = "sha256"
    batch_size: int = 10
    max_retries: int = 3
    retry_base_delay_seconds: float = 0.5
    retry_multiplier: float = 2.0
    retry_max_delay_seconds: float = 30.0
    estimate_sample_size: int = 10
    throughput_bytes_per_second: int = ONE_MIB
    log_level: str = "INFO"
    log_format: str = "text"

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            msg = f"batch_size must be >= 1, got {self.batch_size}"
            raise ValueError(msg)
        if self.estimate_sample_size < 0:
            msg = f"estimate_sample_size must be >= 0, got {self.estimate_sample_size}"
            raise ValueError(msg)
        if self.throughput_bytes_per_second <= 0:
            msg = "throughput_bytes_per_second must be positive"
            raise ValueError(msg)
        if self.log_format not in ("text", "json"):
            msg = f"log_format must be 'text' or 'json', got {self.log_format!r}"
            raise ValueError(msg)
        # Validates the retry fields eagerly
        self.retry_policy()

    @classmethod
    def from_env(cls, env: EnvManager | None = None) -> CasportConfig:
        """Create config from CASPORT_* environment variables."""
        env = env or get_env()

        return cls(
            hash_algorithm=env.get("CASPORT_HASH_ALGORITHM", "sha256"),
            batch_size=env.get_int("CASPORT_BATCH_SIZE", 10),
            max_retries=env.get_int("CASPORT_MAX_RETRIES", 3),
            retry_base_delay_seconds=env.get_float("CASPORT_RETRY_BASE_DELAY", 0.5),
            retry_multiplier=env.get_float("CASPORT_RETRY_MULTIPLIER", 2.0),
            retry_max_delay_seconds=env.get_float("CASPORT_RETRY_MAX_DELAY", 30.0),
            estimate_sample_size=env.get_int("CASPORT_ESTIMATE_SAMPLE_SIZE", 10),
            throughput_bytes_per_second=env.get_int("CASPORT_THROUGHPUT_BPS", ONE_MIB),
            log_level=env.get("CASPORT_LOG_LEVEL", "INFO").upper(),
            log_format=env.get("CASPORT_LOG_FORMAT", "text").lower(),
        )

    def retry_policy(self) -> RetryPolicy:
        """Build the queue retry policy from this config."""
        from casport.queue.types import RetryPolicy

        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_seconds=self.retry_base_delay_seconds,
            multiplier=self.retry_multiplier,
            max_delay_seconds=self.retry_max_delay_seconds,
        )

    def queue_config(self, max_concurrent: int | None = None) -> QueueConfig:
        """Build an upload queue config, defaulting concurrency to batch_size."""
        from casport.queue.types import QueueConfig

        return QueueConfig(
            max_concurrent=max_concurrent or self.batch_size,
            retry_policy=self.retry_policy(),
        )

    def configure_logging(self) -> None:
        """Apply log_level and log_format to the 'casport' logger namespace."""
        from casport.core.logger import configure_default_logging

        configure_default_logging(self.log_level, json_format=self.log_format == "json")


# Global configuration instance
_global_config: CasportConfig | None = None


def configure(config: CasportConfig) -> None:
    """Set the global casport configuration."""
    global _global_config
    _global_config = config
    logger.debug(f"casport configured: {config}")


def get_config() -> CasportConfig:
    """Get the global configuration, building it from the environment on first use."""
    global _global_config
    if _global_config is None:
        _global_config = CasportConfig.from_env()
    return _global_config
