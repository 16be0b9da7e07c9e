"""
Unit tests for the partition lock.
"""

import os
import time

import pytest

from tool_usage_analytics.analytics.lock import PartitionLock
from tool_usage_analytics.analytics.models import LockTimeoutError


class TestPartitionLock:
    """Test lock acquisition, release and staleness."""

    @pytest.fixture
    def partition_path(self, tmp_path):
        return tmp_path / "analytics-2026-03-01.json"

    def _pin_fresh(self, lock):
        """Keep a held lock from ageing past short test timeouts."""
        future = time.time() + 60
        os.utime(lock.lock_path, (future, future))

    @pytest.mark.asyncio
    async def test_acquire_writes_pid(self, partition_path):
        """Test that the lock file holds the owner's pid."""
        lock = PartitionLock(partition_path)

        assert await lock.acquire()
        assert lock.is_acquired
        assert lock.lock_path == partition_path.parent / "analytics-2026-03-01.json.lock"
        assert lock.lock_path.read_text() == str(os.getpid())

        lock.release()
        assert not lock.lock_path.exists()
        assert not lock.is_acquired

    @pytest.mark.asyncio
    async def test_held_lock_times_out(self, partition_path):
        holder = PartitionLock(partition_path)
        assert await holder.acquire()
        self._pin_fresh(holder)

        waiter = PartitionLock(partition_path, timeout_ms=100, retry_ms=10)
        started = time.monotonic()

        assert not await waiter.acquire()
        assert time.monotonic() - started >= 0.1
        assert holder.lock_path.exists()

        holder.release()

    @pytest.mark.asyncio
    async def test_stale_lock_is_broken(self, partition_path):
        """Test that a lock older than the timeout is removed."""
        lock_path = partition_path.parent / (partition_path.name + ".lock")
        lock_path.write_text("99999")
        old = time.time() - 10
        os.utime(lock_path, (old, old))

        lock = PartitionLock(partition_path, timeout_ms=1000, retry_ms=10)

        assert await lock.acquire()
        assert lock_path.read_text() == str(os.getpid())
        lock.release()

    @pytest.mark.asyncio
    async def test_release_without_acquire_keeps_foreign_lock(self, partition_path):
        holder = PartitionLock(partition_path)
        assert await holder.acquire()

        other = PartitionLock(partition_path)
        other.release()

        assert holder.lock_path.exists()
        holder.release()

    @pytest.mark.asyncio
    async def test_context_manager_releases(self, partition_path):
        async with PartitionLock(partition_path) as lock:
            assert lock.lock_path.exists()

        assert not lock.lock_path.exists()

    @pytest.mark.asyncio
    async def test_context_manager_raises_on_timeout(self, partition_path):
        holder = PartitionLock(partition_path)
        assert await holder.acquire()
        self._pin_fresh(holder)

        with pytest.raises(LockTimeoutError) as exc_info:
            async with PartitionLock(partition_path, timeout_ms=50, retry_ms=10):
                pass

        assert exc_info.value.code == "lock_timeout"
        holder.release()
