"""
Event collection for usage analytics.

Buffers tracked invocations in memory and flushes them to the event store
when a batch fills up or on a periodic background task.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from ..utils.dates import utc_now_iso
from .models import AnalyticsEvent
from .storage import EventStore

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_FLUSH_INTERVAL_SECONDS = 30.0


@dataclass
class FlushResult:
    """Outcome of writing buffered events to the store."""

    success: bool
    events_flushed: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success, "eventsFlushed": self.events_flushed}
        if self.error:
            result["error"] = self.error
        return result


def generate_session_id() -> str:
    return uuid.uuid4().hex[:16]


def _unwritten(events: List[AnalyticsEvent], written: int) -> List[AnalyticsEvent]:
    """
    Events left over after a partial append.

    The store commits whole date groups in ascending date order, so the
    first ``written`` events by date are on disk.
    """
    by_date: Dict[str, List[AnalyticsEvent]] = {}
    for event in events:
        by_date.setdefault(event.date, []).append(event)

    remaining: List[AnalyticsEvent] = []
    committed = 0
    for date in sorted(by_date):
        group = by_date[date]
        if committed + len(group) <= written:
            committed += len(group)
        else:
            remaining.extend(group)
    return remaining


class AnalyticsCollector:
    """
    Batching front end to the event store.

    Events are validated when tracked and written in batches. A failed
    flush keeps its unwritten events at the head of the buffer.
    """

    def __init__(
        self,
        store: EventStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
        flush_interval_seconds: float = DEFAULT_FLUSH_INTERVAL_SECONDS,
        session_id: Optional[str] = None,
    ):
        """
        Initialize the collector.

        Args:
            store: Destination event store
            batch_size: Buffered events that trigger an immediate flush
            flush_interval_seconds: Period of the background flush task
            session_id: Session identifier stamped on tracked events
        """
        self.store = store
        self.batch_size = batch_size
        self.flush_interval_seconds = flush_interval_seconds
        self.session_id = session_id or generate_session_id()

        self._buffer: List[AnalyticsEvent] = []
        self._flush_lock = asyncio.Lock()
        self._flush_task: Optional[asyncio.Task] = None
        self._inflight_flush: Optional[asyncio.Future] = None
        self._running = False

        self._total_tracked = 0
        self._total_flushed = 0
        self._flush_errors = 0

    @classmethod
    def from_config(cls, store: EventStore, config) -> "AnalyticsCollector":
        """Build a collector from a ``CollectorConfig``."""
        return cls(
            store,
            batch_size=config.batch_size,
            flush_interval_seconds=config.flush_interval_ms / 1000,
        )

    @property
    def pending_events(self) -> int:
        return len(self._buffer)

    async def start(self) -> None:
        """Start the periodic flush task."""
        if self._running:
            return

        self._running = True
        self._flush_task = asyncio.create_task(self._flush_loop())

        logger.info(
            "Analytics collector started",
            batch_size=self.batch_size,
            flush_interval=self.flush_interval_seconds,
            session_id=self.session_id,
        )

    async def stop(self) -> FlushResult:
        """Stop the flush task and write whatever is still buffered."""
        if self._running:
            self._running = False
            if self._flush_task:
                self._flush_task.cancel()
                try:
                    await self._flush_task
                except asyncio.CancelledError:
                    pass
                self._flush_task = None
            if self._inflight_flush is not None:
                try:
                    await self._inflight_flush
                except Exception as e:
                    logger.error("In-flight flush failed", error=str(e))
                self._inflight_flush = None

        result = await self.flush()
        logger.info(
            "Analytics collector stopped",
            total_tracked=self._total_tracked,
            total_flushed=self._total_flushed,
            pending=self.pending_events,
        )
        return result

    async def track(
        self,
        tool_name: str,
        success: bool,
        duration_ms: float,
        error_category: Optional[str] = None,
        timestamp: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> AnalyticsEvent:
        """
        Record one invocation.

        Raises:
            pydantic.ValidationError: If the event is invalid
        """
        event = AnalyticsEvent(
            tool_name=tool_name,
            timestamp=timestamp or utc_now_iso(),
            success=success,
            duration_ms=duration_ms,
            session_id=session_id or self.session_id,
            error_category=None if success else error_category,
        )
        self._buffer.append(event)
        self._total_tracked += 1

        if len(self._buffer) >= self.batch_size:
            await self.flush()
        return event

    async def flush(self) -> FlushResult:
        """Write buffered events to the store."""
        async with self._flush_lock:
            if not self._buffer:
                return FlushResult(success=True, events_flushed=0)

            batch = self._buffer
            self._buffer = []

            result = await self.store.append_events(batch)
            self._total_flushed += result.events_written

            if result.success:
                logger.debug("Analytics batch flushed", events=result.events_written)
                return FlushResult(success=True, events_flushed=result.events_written)

            self._flush_errors += 1
            self._buffer = _unwritten(batch, result.events_written) + self._buffer
            logger.warning(
                "Analytics flush failed",
                error=result.error,
                written=result.events_written,
                requeued=self.pending_events,
            )
            return FlushResult(
                success=False, events_flushed=result.events_written, error=result.error
            )

    async def _flush_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.flush_interval_seconds)
                # Cancelling the loop must not abandon a batch already taken from the buffer
                self._inflight_flush = asyncio.ensure_future(self.flush())
                await asyncio.shield(self._inflight_flush)
                self._inflight_flush = None
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in flush loop", error=str(e))

    def get_stats(self) -> Dict[str, Any]:
        """Get collector statistics."""
        return {
            "running": self._running,
            "pendingEvents": self.pending_events,
            "totalEventsTracked": self._total_tracked,
            "totalEventsFlushed": self._total_flushed,
            "totalFlushErrors": self._flush_errors,
            "sessionId": self.session_id,
            "batchSize": self.batch_size,
            "flushIntervalSeconds": self.flush_interval_seconds,
        }
