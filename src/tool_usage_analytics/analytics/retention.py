"""
Retention policy enforcement.

Runs the store's cleanup on a schedule and keeps a bounded log of what each
run did.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional

import structlog

from ..utils.dates import days_ago, utc_now_iso
from .models import CleanupResult
from .storage import EventStore

logger = structlog.get_logger(__name__)

DEFAULT_CLEANUP_INTERVAL_SECONDS = 24 * 60 * 60
MAX_LOG_ENTRIES = 100


@dataclass
class CleanupLogEntry:
    action: str
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "action": self.action, "details": self.details}


@dataclass
class RetentionRunResult:
    """Cleanup outcome annotated with the policy that produced it."""

    result: CleanupResult
    retention_days: int
    cutoff_date: str
    duration_ms: float
    dry_run: bool

    @property
    def success(self) -> bool:
        return self.result.success

    def to_dict(self) -> Dict[str, Any]:
        data = self.result.to_dict()
        data.update(
            {
                "retentionDays": self.retention_days,
                "cutoffDate": self.cutoff_date,
                "durationMs": self.duration_ms,
                "dryRun": self.dry_run,
            }
        )
        return data


class RetentionEnforcer:
    """Scheduled retention cleanup with running totals."""

    def __init__(
        self,
        store: EventStore,
        interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        run_on_start: bool = True,
    ):
        self.store = store
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start

        self._logs: Deque[CleanupLogEntry] = deque(maxlen=MAX_LOG_ENTRIES)
        self._task: Optional[asyncio.Task] = None
        self._running = False

        self._total_cleanups = 0
        self._total_files_deleted = 0
        self._total_events_deleted = 0
        self._last_cleanup_at: Optional[str] = None
        self._last_result: Optional[RetentionRunResult] = None

    async def start(self) -> None:
        """Start scheduled cleanup, optionally running once immediately."""
        if self._running:
            return

        self._running = True
        if self.run_on_start:
            await self.run_cleanup()
        self._task = asyncio.create_task(self._cleanup_loop())

        logger.info(
            "Retention enforcer started",
            retention_days=self.store.retention_days,
            interval_seconds=self.interval_seconds,
        )

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Retention enforcer stopped", total_cleanups=self._total_cleanups)

    async def _cleanup_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.run_cleanup()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in retention loop", error=str(e))

    async def run_cleanup(self, dry_run: bool = False) -> RetentionRunResult:
        """
        Apply the retention policy once.

        Totals only advance for successful real runs.
        """
        started = time.monotonic()
        retention_days = self.store.retention_days
        cutoff = days_ago(retention_days)
        policy = {"retentionDays": retention_days, "cutoffDate": cutoff, "dryRun": dry_run}

        self._log("dry_run" if dry_run else "cleanup_started", policy)

        result = await self.store.run_cleanup(dry_run=dry_run)
        run = RetentionRunResult(
            result=result,
            retention_days=retention_days,
            cutoff_date=cutoff,
            duration_ms=(time.monotonic() - started) * 1000,
            dry_run=dry_run,
        )

        if result.success and not dry_run:
            self._total_cleanups += 1
            self._total_files_deleted += result.files_deleted
            self._total_events_deleted += result.events_deleted
            self._last_cleanup_at = utc_now_iso()
            self._last_result = run

        details = dict(policy)
        details.update(
            {"filesDeleted": result.files_deleted, "eventsDeleted": result.events_deleted}
        )
        if result.error:
            details["error"] = result.error
        self._log("cleanup_completed" if result.success else "cleanup_failed", details)

        return run

    def _log(self, action: str, details: Dict[str, Any]) -> None:
        self._logs.append(CleanupLogEntry(action=action, details=details))
        logger.debug("Retention event", action=action, **details)

    def get_cleanup_logs(self) -> List[CleanupLogEntry]:
        return list(self._logs)

    def clear_cleanup_logs(self) -> None:
        self._logs.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get retention statistics."""
        return {
            "totalCleanups": self._total_cleanups,
            "totalFilesDeleted": self._total_files_deleted,
            "totalEventsDeleted": self._total_events_deleted,
            "lastCleanupAt": self._last_cleanup_at,
            "lastCleanupResult": self._last_result.to_dict() if self._last_result else None,
            "currentRetentionDays": self.store.retention_days,
            "scheduledCleanupActive": self._running,
        }
