"""
Tests for MigrationEngine: estimation, transfer policies, cancellation and
failure handling.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry

from casport.content.addresser import ContentAddresser
from casport.core.config import CasportConfig
from casport.core.exceptions import EngineStateError
from casport.migration.engine import MigrationEngine
from casport.migration.progress import ProgressTracker
from casport.migration.types import SOURCE_ERROR_PATH, MigrationOptions, MigrationStatus
from casport.monitoring.prometheus import MigrationMetrics
from casport.queue.storage.memory import InMemoryQueueStorage
from casport.storage.core.errors import StorageIOError

BLOBS = (b"a" * 10, b"b" * 20, b"c" * 30)


def _consistent(progress):
    return (
        progress.processed_items == progress.successful_items + progress.failed_items
        and progress.processed_items <= progress.total_items
    )


class TestEstimate:
    """Tests for estimate()."""

    @pytest.mark.asyncio
    async def test_exact_estimate(self, source, populate):
        await populate(source, *BLOBS)
        engine = MigrationEngine(source, CasportConfig(throughput_bytes_per_second=60))

        estimate = await engine.estimate()

        assert estimate.item_count == 3
        assert estimate.total_size == 60
        assert estimate.estimated_time == pytest.approx(1.0)
        assert estimate.is_exact
        assert engine.last_estimate is estimate

    @pytest.mark.asyncio
    async def test_estimate_does_not_change_status(self, source, populate, fast_config):
        await populate(source, *BLOBS)
        engine = MigrationEngine(source, fast_config)

        await engine.estimate()

        assert engine.status == MigrationStatus.IDLE
        assert engine.progress.total_items == 0

    @pytest.mark.asyncio
    async def test_sampled_estimate_extrapolates(self, source, populate):
        await populate(source, b"x" * 10, b"y" * 20, b"z" * 30, b"w" * 40)
        engine = MigrationEngine(source, CasportConfig(estimate_sample_size=2))

        estimate = await engine.estimate()

        assert estimate.item_count == 4
        assert estimate.sampled_items == 2
        assert estimate.total_size == 60
        assert not estimate.is_exact

    @pytest.mark.asyncio
    async def test_zero_sample_size_sizes_everything(self, source, populate):
        await populate(source, *(bytes([i]) * (i + 1) for i in range(15)))
        engine = MigrationEngine(source, CasportConfig(estimate_sample_size=0))

        estimate = await engine.estimate()

        assert estimate.sampled_items == 15
        assert estimate.total_size == sum(range(1, 16))

    @pytest.mark.asyncio
    async def test_empty_source(self, source, fast_config):
        estimate = await MigrationEngine(source, fast_config).estimate()

        assert estimate.item_count == 0
        assert estimate.total_size == 0
        assert estimate.estimated_time == 0


class TestMigration:
    """Tests for start() end to end."""

    @pytest.mark.asyncio
    async def test_three_items_with_batch_of_two(self, source, target, populate, fast_config):
        hashes = await populate(source, *BLOBS)
        target.write_delay = 0.01
        engine = MigrationEngine(source, fast_config)

        assert (await engine.estimate()).total_size == 60
        progress = await engine.start(target, MigrationOptions(batch_size=2))

        assert progress.status == MigrationStatus.COMPLETED
        assert (progress.total_items, progress.processed_items) == (3, 3)
        assert (progress.successful_items, progress.failed_items) == (3, 0)
        assert progress.percent_complete == 100.0
        assert target.max_in_flight == 2
        for content_hash, data in zip(hashes, BLOBS, strict=True):
            assert await target.read(content_hash) == data
            assert await source.exists(content_hash)

    @pytest.mark.asyncio
    async def test_simultaneous_completions_are_both_counted(self, source, target, populate, fast_config):
        """Two transfers finishing in the same scheduling tick each land their increment."""
        await populate(source, b"left", b"right")
        target.write_delay = 0.01
        tracker = ProgressTracker()
        counts = []
        tracker.add_listener(lambda p: counts.append(p.processed_items))

        progress = await MigrationEngine(source, fast_config, tracker=tracker).start(
            target, MigrationOptions(batch_size=2)
        )

        assert target.max_in_flight == 2
        assert progress.processed_items == 2
        assert 1 in counts
        assert counts[-1] == 2

    @pytest.mark.asyncio
    async def test_empty_source_completes(self, source, target, fast_config):
        progress = await MigrationEngine(source, fast_config).start(target)

        assert progress.status == MigrationStatus.COMPLETED
        assert progress.total_items == 0
        assert progress.processed_items == 0
        assert progress.errors == ()

    @pytest.mark.asyncio
    async def test_skip_existing_performs_no_writes(self, source, target, populate, fast_config):
        await populate(source, *BLOBS)
        await populate(target, *BLOBS)

        progress = await MigrationEngine(source, fast_config).start(target)

        assert progress.successful_items == 3
        assert progress.failed_items == 0
        assert target.writes == []

    @pytest.mark.asyncio
    async def test_rerun_after_success_is_idempotent(self, source, target, populate, fast_config):
        await populate(source, *BLOBS)
        engine = MigrationEngine(source, fast_config)
        await engine.start(target)
        writes_after_first_run = len(target.writes)

        engine.reset()
        progress = await engine.start(target)

        assert progress.successful_items == 3
        assert len(target.writes) == writes_after_first_run

    @pytest.mark.asyncio
    async def test_without_skip_existing_everything_is_written(self, source, target, populate, fast_config):
        await populate(source, *BLOBS)
        await populate(target, *BLOBS)

        progress = await MigrationEngine(source, fast_config).start(
            target, MigrationOptions(skip_existing=False)
        )

        assert progress.successful_items == 3
        assert len(target.writes) == 3

    @pytest.mark.asyncio
    async def test_filter_selects_items(self, source, target, populate, fast_config):
        hashes = await populate(source, *BLOBS)

        progress = await MigrationEngine(source, fast_config).start(
            target, MigrationOptions(filter=lambda h: h == hashes[1])
        )

        assert progress.total_items == 1
        assert target.writes == [hashes[1]]

    @pytest.mark.asyncio
    async def test_every_snapshot_is_consistent(self, source, target, populate, fast_config):
        hashes = await populate(source, *(bytes([i]) for i in range(12)))
        target.fail_writes.add(hashes[3])
        engine = MigrationEngine(source, fast_config)

        async with engine.subscribe() as updates:
            run = asyncio.create_task(engine.start(target, MigrationOptions(batch_size=4)))
            snapshots = [p async for p in updates]
        final = await run

        assert all(_consistent(p) for p in snapshots)
        assert snapshots[-1] == final
        assert [p.processed_items for p in snapshots] == sorted(p.processed_items for p in snapshots)
        assert final.processed_items == 12


class TestDeleteAfterMigration:
    """Source deletion happens only after a confirmed target write."""

    @pytest.mark.asyncio
    async def test_write_precedes_delete(self, recording_provider, target, populate, fast_config):
        source = recording_provider(name="source")
        hashes = await populate(source, *BLOBS)
        events = []

        real_write, real_delete = target.write, source.delete

        async def write(content_hash, data):
            await real_write(content_hash, data)
            events.append(("write", content_hash))

        async def delete(content_hash):
            events.append(("delete", content_hash))
            await real_delete(content_hash)

        target.write = write
        source.delete = delete

        progress = await MigrationEngine(source, fast_config).start(
            target, MigrationOptions(batch_size=3, delete_after_migration=True)
        )

        assert progress.successful_items == 3
        assert len(source) == 0
        for content_hash in hashes:
            assert events.index(("write", content_hash)) < events.index(("delete", content_hash))

    @pytest.mark.asyncio
    async def test_failed_transfer_keeps_source_item(self, recording_provider, target, populate, fast_config):
        source = recording_provider(name="source")
        hashes = await populate(source, *BLOBS)
        target.fail_writes.add(hashes[0])

        progress = await MigrationEngine(source, fast_config).start(
            target, MigrationOptions(delete_after_migration=True)
        )

        assert progress.failed_items == 1
        assert hashes[0] not in source.deletes
        assert await source.exists(hashes[0])
        assert set(source.deletes) == set(hashes[1:])

    @pytest.mark.asyncio
    async def test_source_delete_failure_still_counts_as_migrated(self, source, target, populate, fast_config):
        await populate(source, *BLOBS)
        source.delete = AsyncMock(side_effect=StorageIOError("read-only source"))

        progress = await MigrationEngine(source, fast_config).start(
            target, MigrationOptions(delete_after_migration=True)
        )

        assert progress.successful_items == 3
        assert source.delete.await_count == 3


class TestFailures:
    """Item-level and run-level failures."""

    @pytest.mark.asyncio
    async def test_exhausted_retries_fail_one_item(self, source, target, populate, fast_config):
        hashes = await populate(source, *BLOBS)
        target.fail_writes.add(hashes[2])

        progress = await MigrationEngine(source, fast_config).start(target)

        assert progress.status == MigrationStatus.COMPLETED
        assert (progress.successful_items, progress.failed_items) == (2, 1)
        assert progress.errors[0].path == hashes[2].path
        assert "simulated backend outage" in progress.errors[0].error
        # First attempt plus max_retries
        assert target.writes.count(hashes[2]) == fast_config.max_retries + 1

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, source, target, populate, fast_config):
        hashes = await populate(source, *BLOBS)
        target.fail_first[hashes[0]] = 1

        progress = await MigrationEngine(source, fast_config).start(target)

        assert progress.successful_items == 3
        assert target.writes.count(hashes[0]) == 2

    @pytest.mark.asyncio
    async def test_corrupted_source_item_fails_integrity_check(self, source, target, fast_config):
        claimed = ContentAddresser().hash(b"original")
        source._store(claimed, b"tampered")

        progress = await MigrationEngine(source, fast_config).start(target)

        assert progress.failed_items == 1
        assert "do not match" in progress.errors[0].error
        assert target.writes == []

    @pytest.mark.asyncio
    async def test_source_read_failure_fails_item(self, source, target, populate, fast_config):
        await populate(source, *BLOBS)
        source.read = AsyncMock(side_effect=StorageIOError("disk gone"))

        progress = await MigrationEngine(source, fast_config).start(target)

        assert progress.status == MigrationStatus.COMPLETED
        assert progress.failed_items == 3

    @pytest.mark.asyncio
    async def test_source_listing_failure_fails_run(self, source, target, fast_config):
        source.list = AsyncMock(side_effect=StorageIOError("source offline"))

        progress = await MigrationEngine(source, fast_config).start(target)

        assert progress.status == MigrationStatus.FAILED
        assert progress.errors[-1].path == SOURCE_ERROR_PATH
        assert "source offline" in progress.errors[-1].error

    @pytest.mark.asyncio
    async def test_same_provider_is_rejected(self, source, fast_config):
        engine = MigrationEngine(source, fast_config)

        with pytest.raises(ValueError):
            await engine.start(source)

        assert engine.status == MigrationStatus.IDLE


class TestLifecycle:
    """Tests for start/cancel/reset state rules."""

    @pytest.mark.asyncio
    async def test_start_while_running_raises(self, source, target, populate, fast_config):
        await populate(source, *BLOBS)
        target.write_delay = 0.05
        engine = MigrationEngine(source, fast_config)

        run = asyncio.create_task(engine.start(target))
        await asyncio.sleep(0)

        assert engine.is_running
        with pytest.raises(EngineStateError):
            await engine.start(target)
        assert (await run).status == MigrationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_start_after_finish_requires_reset(self, source, target, fast_config):
        engine = MigrationEngine(source, fast_config)
        await engine.start(target)

        with pytest.raises(EngineStateError):
            await engine.start(target)

        engine.reset()
        assert engine.status == MigrationStatus.IDLE
        assert (await engine.start(target)).status == MigrationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_reset_while_idle_raises(self, source, fast_config):
        with pytest.raises(EngineStateError):
            MigrationEngine(source, fast_config).reset()

    @pytest.mark.asyncio
    async def test_reset_clears_estimate_and_progress(self, source, target, populate, fast_config):
        await populate(source, *BLOBS)
        engine = MigrationEngine(source, fast_config)
        await engine.estimate()
        await engine.start(target)

        engine.reset()

        assert engine.last_estimate is None
        assert engine.progress.total_items == 0
        assert engine.get_stats()["target"] is None

    @pytest.mark.asyncio
    async def test_cancel_stops_new_dispatches(self, source, target, populate, fast_config):
        await populate(source, *(bytes([i]) for i in range(10)))
        tracker = ProgressTracker()
        engine = MigrationEngine(source, fast_config, tracker=tracker)
        tracker.add_listener(lambda p: p.processed_items == 1 and engine.cancel())

        progress = await engine.start(target, MigrationOptions(batch_size=1))

        assert progress.status == MigrationStatus.CANCELLED
        assert progress.total_items == 10
        assert progress.processed_items == 1
        assert len(target.writes) == 1

    @pytest.mark.asyncio
    async def test_in_flight_transfers_finish_after_cancel(self, source, target, populate, fast_config):
        await populate(source, *(bytes([i]) for i in range(10)))
        target.write_delay = 0.05
        engine = MigrationEngine(source, fast_config)

        run = asyncio.create_task(engine.start(target, MigrationOptions(batch_size=3)))
        await asyncio.sleep(0.01)
        engine.cancel()
        progress = await run

        assert progress.status == MigrationStatus.CANCELLED
        assert progress.processed_items == 3
        assert progress.successful_items == 3
        assert len(target) == 3

    @pytest.mark.asyncio
    async def test_rejected_start_keeps_pending_cancel(self, source, target, populate, fast_config):
        await populate(source, *(bytes([i]) for i in range(6)))
        target.write_delay = 0.05
        engine = MigrationEngine(source, fast_config)

        run = asyncio.create_task(engine.start(target, MigrationOptions(batch_size=1)))
        await asyncio.sleep(0.01)
        engine.cancel()
        with pytest.raises(EngineStateError):
            await engine.start(target)
        progress = await run

        assert progress.status == MigrationStatus.CANCELLED
        assert progress.processed_items == 1
        assert len(target.writes) == 1
        assert engine.get_stats()["target"] == target.name

    @pytest.mark.asyncio
    async def test_cancel_when_idle_is_noop(self, source, fast_config):
        engine = MigrationEngine(source, fast_config)

        engine.cancel()

        assert engine.status == MigrationStatus.IDLE

    @pytest.mark.asyncio
    async def test_task_cancellation_ends_cancelled(self, source, target, populate, fast_config):
        await populate(source, *BLOBS)
        target.write_delay = 10
        engine = MigrationEngine(source, fast_config)

        run = asyncio.create_task(engine.start(target))
        await asyncio.sleep(0.01)
        run.cancel()
        with pytest.raises(asyncio.CancelledError):
            await run

        assert engine.status == MigrationStatus.CANCELLED


class TestObservability:
    @pytest.mark.asyncio
    async def test_metrics(self, source, target, populate, fast_config):
        hashes = await populate(source, *BLOBS)
        await populate(target, BLOBS[0])
        target.fail_first[hashes[1]] = 1
        registry = CollectorRegistry()
        engine = MigrationEngine(source, fast_config, metrics=MigrationMetrics(registry=registry))

        await engine.start(target)

        def sample(name, **labels):
            return registry.get_sample_value(name, labels)

        assert sample("casport_items_total", result="skipped") == 1
        assert sample("casport_items_total", result="migrated") == 2
        assert sample("casport_transfer_retries_total") == 1
        assert sample("casport_runs_total", status="completed") == 1
        assert sample("casport_transfers_in_flight") == 0
        assert sample("casport_transfer_duration_seconds_count") == 2

    @pytest.mark.asyncio
    async def test_get_stats(self, source, target, populate, fast_config):
        await populate(source, *BLOBS)
        engine = MigrationEngine(source, fast_config, queue_storage=InMemoryQueueStorage())
        await engine.start(target, MigrationOptions(batch_size=2))

        stats = engine.get_stats()

        assert stats["status"] == "completed"
        assert stats["is_running"] is False
        assert stats["percent_complete"] == 100.0
        assert stats["source"] == "source"
        assert stats["target"] == "target"
        assert stats["options"]["batch_size"] == 2
        assert stats["queue"]["total"] == 0
