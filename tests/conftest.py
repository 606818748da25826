"""
Pytest configuration and shared fixtures for casport tests
"""

import asyncio

import pytest

from casport.content.addresser import ContentAddresser
from casport.core import config as config_module
from casport.core.config import CasportConfig
from casport.core.logger import set_logger
from casport.storage.backends.memory import InMemoryStorageProvider
from casport.storage.core.errors import StorageIOError

# ============================================
# TEST DOUBLES
# ============================================


class RecordingProvider(InMemoryStorageProvider):
    """
    In-memory provider that records calls and can inject failures.

    Attributes:
        writes: Hashes passed to write(), in call order
        deletes: Hashes passed to delete(), in call order
        fail_writes: Hashes whose writes always raise StorageIOError
        fail_first: Hash -> number of leading write attempts that fail
        write_delay: Seconds each write sleeps before storing
    """

    def __init__(self, name: str | None = None, **kwargs):
        super().__init__(name=name or "recording", **kwargs)
        self.writes = []
        self.deletes = []
        self.fail_writes = set()
        self.fail_first = {}
        self.write_delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    async def write(self, content_hash, data):
        self.writes.append(content_hash)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.write_delay:
                await asyncio.sleep(self.write_delay)
            if content_hash in self.fail_writes:
                msg = "simulated backend outage"
                raise StorageIOError(msg, operation="write", item_id=content_hash.path)
            if self.fail_first.get(content_hash, 0) > 0:
                self.fail_first[content_hash] -= 1
                msg = "simulated transient failure"
                raise StorageIOError(msg, operation="write", item_id=content_hash.path)
            await super().write(content_hash, data)
        finally:
            self.in_flight -= 1

    async def delete(self, content_hash):
        self.deletes.append(content_hash)
        await super().delete(content_hash)


async def _populate(provider, *blobs):
    """Store blobs in a provider and return their hashes."""
    addresser = ContentAddresser()
    hashes = []
    for data in blobs:
        content_hash = addresser.hash(data)
        if isinstance(provider, RecordingProvider):
            # Seed without counting as a write
            provider._store(content_hash, data)
        else:
            await provider.write(content_hash, data)
        hashes.append(content_hash)
    return hashes


# ============================================
# FIXTURES
# ============================================


@pytest.fixture(autouse=True)
def reset_globals():
    """Restore the default logger and global config after each test."""
    yield
    set_logger(None)
    config_module._global_config = None


@pytest.fixture
def fast_config():
    """Config with zero backoff so retry paths run instantly."""
    return CasportConfig(
        max_retries=2,
        retry_base_delay_seconds=0.0,
        retry_max_delay_seconds=0.0,
    )


@pytest.fixture
def source():
    return InMemoryStorageProvider(name="source")


@pytest.fixture
def target():
    return RecordingProvider(name="target")


@pytest.fixture
def recording_provider():
    """Factory for RecordingProvider instances."""
    return RecordingProvider


@pytest.fixture
def populate():
    """Async helper: ``hashes = await populate(provider, b"a", b"b")``."""
    return _populate
