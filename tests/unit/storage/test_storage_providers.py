"""
Contract tests run against every storage backend.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from casport.content.addresser import ContentAddresser
from casport.content.types import ContentHash
from casport.storage.backends.filesystem import FilesystemStorageProvider
from casport.storage.backends.memory import InMemoryStorageProvider
from casport.storage.backends.sqlite import SQLiteStorageProvider
from casport.storage.core.errors import NotFoundError
from casport.storage.core.health import HealthStatus, check_health_with_timeout

MISSING = ContentHash("sha256", "00" * 32)


@pytest.fixture(params=["memory", "filesystem", "sqlite"])
async def provider(request, tmp_path):
    if request.param == "memory":
        instance = InMemoryStorageProvider()
    elif request.param == "filesystem":
        instance = FilesystemStorageProvider(tmp_path / "blobs")
    else:
        instance = SQLiteStorageProvider(str(tmp_path / "blobs.db"))
    yield instance
    await instance.close()


def _h(data: bytes) -> ContentHash:
    return ContentAddresser().hash(data)


class TestStorageContract:
    """Every backend honours write/read/exists/list/delete."""

    @pytest.mark.asyncio
    async def test_write_then_read(self, provider):
        await provider.write(_h(b"hello"), b"hello")

        assert await provider.read(_h(b"hello")) == b"hello"
        assert await provider.exists(_h(b"hello"))

    @pytest.mark.asyncio
    async def test_read_missing_raises_not_found(self, provider):
        with pytest.raises(NotFoundError) as exc_info:
            await provider.read(MISSING)

        assert exc_info.value.item_id == MISSING.path
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_write_is_idempotent(self, provider):
        """Writing an existing hash is a no-op success with one physical copy."""
        h = _h(b"same")
        await provider.write(h, b"same")
        await provider.write(h, b"same")

        assert await provider.list() == [h]
        stats = await provider.get_statistics()
        assert stats.item_count == 1
        assert stats.total_bytes == 4

    @pytest.mark.asyncio
    async def test_list_returns_all_hashes(self, provider):
        blobs = [b"one", b"two", b"three"]
        for data in blobs:
            await provider.write(_h(data), data)

        assert set(await provider.list()) == {_h(d) for d in blobs}

    @pytest.mark.asyncio
    async def test_list_empty(self, provider):
        assert await provider.list() == []

    @pytest.mark.asyncio
    async def test_delete(self, provider):
        h = _h(b"gone")
        await provider.write(h, b"gone")

        await provider.delete(h)

        assert not await provider.exists(h)
        with pytest.raises(NotFoundError):
            await provider.read(h)

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, provider):
        await provider.delete(MISSING)

    @pytest.mark.asyncio
    async def test_size(self, provider):
        await provider.write(_h(b"12345"), b"12345")

        assert await provider.size(_h(b"12345")) == 5
        with pytest.raises(NotFoundError):
            await provider.size(MISSING)

    @pytest.mark.asyncio
    async def test_empty_blob(self, provider):
        await provider.write(_h(b""), b"")

        assert await provider.read(_h(b"")) == b""

    @pytest.mark.asyncio
    async def test_health_check(self, provider):
        result = await provider.health_check()

        assert result.status == HealthStatus.HEALTHY
        assert result.is_healthy


class TestStorageProviderBase:
    """Tests for StorageProvider defaults."""

    @pytest.mark.asyncio
    async def test_context_manager_closes(self):
        async with InMemoryStorageProvider() as provider:
            assert not provider.is_closed
        assert provider.is_closed

    @pytest.mark.asyncio
    async def test_closed_provider_reports_unhealthy(self):
        provider = InMemoryStorageProvider()
        await provider.close()

        result = await provider.health_check()

        assert result.status == HealthStatus.UNHEALTHY
        assert not result.is_healthy

    def test_repr_includes_name(self):
        assert "'local'" in repr(InMemoryStorageProvider(name="local"))


class TestHealthCheckWithTimeout:
    """Tests for check_health_with_timeout."""

    @pytest.mark.asyncio
    async def test_passes_through_provider_result(self):
        result = await check_health_with_timeout(InMemoryStorageProvider(name="local"), timeout_seconds=1.0)

        assert result.status == HealthStatus.HEALTHY
        assert "local" in result.message

    @pytest.mark.asyncio
    async def test_slow_provider_is_unhealthy(self):
        checker = MagicMock()

        async def never_answers():
            await asyncio.sleep(10)

        checker.health_check = never_answers

        result = await check_health_with_timeout(checker, timeout_seconds=0.01)

        assert result.status == HealthStatus.UNHEALTHY
        assert "timed out" in result.message

    @pytest.mark.asyncio
    async def test_raising_provider_is_unhealthy(self):
        checker = MagicMock()
        checker.health_check = AsyncMock(side_effect=ConnectionError("refused"))

        result = await check_health_with_timeout(checker)

        assert result.status == HealthStatus.UNHEALTHY
        assert result.details["error_type"] == "ConnectionError"
        assert "refused" in result.message
