"""
Advisory per-partition file lock.

A lock is held while ``<partition>.lock`` exists. It is created with
exclusive-create semantics and contains the holder's process id. A lock file
older than the acquisition timeout is treated as abandoned and removed.
"""

import asyncio
import os
import time
from pathlib import Path
from typing import Optional, Union

import structlog

from .models import LockTimeoutError

logger = structlog.get_logger(__name__)

LOCK_SUFFIX = ".lock"
DEFAULT_LOCK_TIMEOUT_MS = 5000
DEFAULT_LOCK_RETRY_MS = 50


class PartitionLock:
    """Exclusive create-if-absent lock guarding one partition file."""

    def __init__(
        self,
        partition_path: Union[str, Path],
        timeout_ms: int = DEFAULT_LOCK_TIMEOUT_MS,
        retry_ms: int = DEFAULT_LOCK_RETRY_MS,
    ):
        """
        Initialize a partition lock.

        Args:
            partition_path: Path of the partition file being guarded
            timeout_ms: Maximum time to wait, also the staleness age
            retry_ms: Delay between acquisition attempts
        """
        self.lock_path = Path(str(partition_path) + LOCK_SUFFIX)
        self.timeout_ms = timeout_ms
        self.retry_ms = retry_ms
        self._acquired = False

    @property
    def is_acquired(self) -> bool:
        return self._acquired

    def _lock_age_ms(self) -> Optional[float]:
        try:
            mtime = self.lock_path.stat().st_mtime
        except FileNotFoundError:
            return None
        return (time.time() - mtime) * 1000

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        return True

    async def acquire(self) -> bool:
        """
        Acquire the lock, waiting up to the timeout.

        Returns:
            True if the lock was acquired, False on timeout
        """
        if self._acquired:
            return True

        deadline = time.monotonic() + self.timeout_ms / 1000

        while True:
            if self._try_create():
                self._acquired = True
                logger.debug("Partition lock acquired", lock=str(self.lock_path))
                return True

            age_ms = self._lock_age_ms()
            if age_ms is None:
                # Released between our attempt and the stat
                continue
            if age_ms > self.timeout_ms:
                logger.warning(
                    "Removing stale partition lock",
                    lock=str(self.lock_path),
                    age_ms=round(age_ms),
                )
                self.force_release()
                continue

            if time.monotonic() >= deadline:
                logger.warning(
                    "Timed out waiting for partition lock",
                    lock=str(self.lock_path),
                    timeout_ms=self.timeout_ms,
                )
                return False

            await asyncio.sleep(self.retry_ms / 1000)

    def release(self) -> None:
        """Release the lock if this instance holds it."""
        if not self._acquired:
            return
        self._acquired = False
        self.force_release()
        logger.debug("Partition lock released", lock=str(self.lock_path))

    def force_release(self) -> None:
        """Remove the lock file regardless of its holder."""
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            pass

    async def __aenter__(self) -> "PartitionLock":
        if not await self.acquire():
            raise LockTimeoutError(
                f"Could not acquire lock {self.lock_path} within {self.timeout_ms}ms",
                details={"lock": str(self.lock_path), "timeout_ms": self.timeout_ms},
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()
