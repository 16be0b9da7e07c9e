"""
Date-partitioned event store.

Events live in one JSON document per UTC calendar date. Writers serialise on
a per-partition lock file and replace the document atomically through a
temporary file; readers never lock. Public operations report failures as
result values and never raise.
"""

import json
import os
import re
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import ValidationError

from ..utils.dates import days_ago, utc_now_iso, utc_today
from .lock import DEFAULT_LOCK_RETRY_MS, DEFAULT_LOCK_TIMEOUT_MS, PartitionLock
from .models import (
    SCHEMA_VERSION,
    AnalyticsEvent,
    CleanupResult,
    DailyPartition,
    LockTimeoutError,
    ReadResult,
    StorageError,
    StorageInfo,
    WriteResult,
)

logger = structlog.get_logger(__name__)

PARTITION_PREFIX = "analytics-"
PARTITION_EXTENSION = ".json"
PARTITION_PATTERN = re.compile(r"^analytics-(\d{4}-\d{2}-\d{2})\.json$")
DEFAULT_RETENTION_DAYS = 90


class EventStore:
    """
    Durable append-only store of analytics events.

    Each partition file is named ``analytics-YYYY-MM-DD.json`` and holds
    ``{schemaVersion, date, events, lastModified}``.
    """

    def __init__(
        self,
        storage_path: Union[str, Path],
        retention_days: int = DEFAULT_RETENTION_DAYS,
        lock_timeout_ms: int = DEFAULT_LOCK_TIMEOUT_MS,
        lock_retry_ms: int = DEFAULT_LOCK_RETRY_MS,
    ):
        """
        Initialize the event store.

        Args:
            storage_path: Directory holding partition files
            retention_days: Days of data kept by cleanup and read by default
            lock_timeout_ms: Maximum wait for a partition lock
            lock_retry_ms: Delay between lock attempts
        """
        self.storage_path = Path(storage_path).expanduser()
        self.retention_days = retention_days
        self.lock_timeout_ms = lock_timeout_ms
        self.lock_retry_ms = lock_retry_ms

    @classmethod
    def from_config(cls, config) -> "EventStore":
        """Build a store from a ``StorageConfig``."""
        return cls(
            storage_path=config.storage_path,
            retention_days=config.retention_days,
            lock_timeout_ms=config.lock_timeout_ms,
            lock_retry_ms=config.lock_retry_ms,
        )

    def partition_path(self, date: str) -> Path:
        """Path of the partition file for a date."""
        return self.storage_path / f"{PARTITION_PREFIX}{date}{PARTITION_EXTENSION}"

    def list_partition_dates(self) -> List[str]:
        """Dates of every partition on disk, ascending."""
        try:
            names = os.listdir(self.storage_path)
        except FileNotFoundError:
            return []

        dates = []
        for name in names:
            match = PARTITION_PATTERN.match(name)
            if match:
                dates.append(match.group(1))
        return sorted(dates)

    async def initialize(self) -> bool:
        """Create the storage directory if needed."""
        try:
            self.storage_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(
                "Failed to create storage directory",
                path=str(self.storage_path),
                error=str(e),
            )
            return False
        return True

    async def append_events(self, events: List[AnalyticsEvent]) -> WriteResult:
        """
        Append events to their date partitions.

        Events are grouped by the date prefix of their timestamp. Groups are
        committed one at a time; when a group fails, earlier groups stay
        written and the result reports how many events made it to disk.
        """
        if not events:
            return WriteResult(success=True, events_written=0)

        if not await self.initialize():
            return WriteResult(
                success=False,
                events_written=0,
                error=f"Storage directory unavailable: {self.storage_path}",
            )

        groups: Dict[str, List[AnalyticsEvent]] = defaultdict(list)
        for event in events:
            groups[event.date].append(event)

        written = 0
        for date in sorted(groups):
            group = groups[date]
            try:
                await self._append_to_partition(date, group)
            except LockTimeoutError as e:
                logger.error("Append aborted on lock timeout", date=date, written=written)
                return WriteResult(success=False, events_written=written, error=e.message)
            except StorageError as e:
                logger.error("Failed to write partition", date=date, error=e.message)
                return WriteResult(success=False, events_written=written, error=e.message)
            except OSError as e:
                logger.error("Partition I/O failed", date=date, error=str(e))
                return WriteResult(
                    success=False,
                    events_written=written,
                    error=f"Failed to write partition {date}: {e}",
                )
            written += len(group)

        logger.debug("Events appended", events=written, partitions=len(groups))
        return WriteResult(success=True, events_written=written)

    async def _append_to_partition(self, date: str, events: List[AnalyticsEvent]) -> None:
        path = self.partition_path(date)
        lock = PartitionLock(path, timeout_ms=self.lock_timeout_ms, retry_ms=self.lock_retry_ms)

        async with lock:
            # Stored records are carried over verbatim, valid or not
            document = self._read_document(path)
            stored: List[Any] = list(document["events"]) if document else []
            payload = {
                "schemaVersion": (document or {}).get("schemaVersion", SCHEMA_VERSION),
                "date": date,
                "events": stored + [event.to_dict() for event in events],
                "lastModified": utc_now_iso(),
            }
            self._write_atomic(path, payload)

    def _write_atomic(self, path: Path, payload: Dict[str, Any]) -> None:
        temp_path = path.with_name(f"{path.name}.tmp.{os.getpid()}")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(temp_path, path)
        except OSError as e:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass
            raise StorageError(
                f"Failed to write partition {path.name}: {e}", details={"path": str(path)}
            ) from e

    def _read_document(self, path: Path) -> Optional[Dict[str, Any]]:
        """Raw partition document, or None when missing or unparseable."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Unreadable partition treated as empty", path=str(path), error=str(e))
            return None

        if not isinstance(data, dict) or not isinstance(data.get("events"), list):
            logger.warning("Malformed partition treated as empty", path=str(path))
            return None
        return data

    def _load_partition(self, path: Path, date: str) -> Optional[DailyPartition]:
        """
        Parse a partition file.

        A missing or unparseable file yields None. Events that fail
        validation are skipped individually.
        """
        data = self._read_document(path)
        if data is None:
            return None

        events = []
        skipped = 0
        for raw in data["events"]:
            try:
                events.append(AnalyticsEvent.model_validate(raw))
            except ValidationError:
                skipped += 1
        if skipped:
            logger.warning("Skipped invalid events", path=str(path), skipped=skipped)

        return DailyPartition(
            schema_version=str(data.get("schemaVersion", SCHEMA_VERSION)),
            date=date,
            events=events,
            last_modified=str(data.get("lastModified", "")),
        )

    async def read_events(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> ReadResult:
        """
        Read events in an inclusive date window, oldest first.

        Args:
            start_date: First date (defaults to today minus the retention period)
            end_date: Last date (defaults to today)
        """
        start = start_date or days_ago(self.retention_days)
        end = end_date or utc_today()
        date_range = {"start": start, "end": end}

        try:
            events: List[AnalyticsEvent] = []
            for date in self.list_partition_dates():
                if start <= date <= end:
                    partition = self._load_partition(self.partition_path(date), date)
                    if partition:
                        events.extend(partition.events)
        except OSError as e:
            logger.error("Failed to read events", error=str(e), **date_range)
            return ReadResult(
                success=False, events=[], date_range=date_range, error=f"Read failed: {e}"
            )

        events.sort(key=lambda event: event.timestamp)
        return ReadResult(success=True, events=events, date_range=date_range)

    async def read_events_for_date(self, date: str) -> List[AnalyticsEvent]:
        """Events recorded on a single date."""
        result = await self.read_events(date, date)
        return result.events

    async def run_cleanup(self, dry_run: bool = False) -> CleanupResult:
        """
        Remove partitions older than the retention period.

        A partition is removed when its date is strictly earlier than today
        minus ``retention_days``. With ``dry_run`` the affected files and
        events are only counted.
        """
        cutoff = days_ago(self.retention_days)
        files_deleted = 0
        events_deleted = 0
        errors: List[str] = []

        try:
            dates = self.list_partition_dates()
        except OSError as e:
            logger.error("Cleanup failed to list partitions", error=str(e))
            return CleanupResult(success=False, error=f"Cleanup failed: {e}")

        for date in dates:
            if date >= cutoff:
                continue

            path = self.partition_path(date)
            partition = self._load_partition(path, date)
            event_count = len(partition.events) if partition else 0

            if not dry_run:
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as e:
                    logger.error("Failed to delete partition", date=date, error=str(e))
                    errors.append(f"{date}: {e}")
                    continue

            files_deleted += 1
            events_deleted += event_count

        logger.info(
            "Retention cleanup finished",
            cutoff=cutoff,
            dry_run=dry_run,
            files=files_deleted,
            events=events_deleted,
        )
        return CleanupResult(
            success=not errors,
            files_deleted=files_deleted,
            events_deleted=events_deleted,
            error="; ".join(errors) if errors else None,
        )

    async def delete_all_data(self) -> CleanupResult:
        """Remove every partition unconditionally."""
        files_deleted = 0
        events_deleted = 0
        errors: List[str] = []

        try:
            dates = self.list_partition_dates()
        except OSError as e:
            logger.error("Deletion failed to list partitions", error=str(e))
            return CleanupResult(success=False, error=f"Deletion failed: {e}")

        for date in dates:
            path = self.partition_path(date)
            partition = self._load_partition(path, date)
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                errors.append(f"{date}: {e}")
                continue
            files_deleted += 1
            events_deleted += len(partition.events) if partition else 0

        if errors:
            logger.error("Some partitions could not be deleted", errors=errors)
        logger.info("All analytics data deleted", files=files_deleted, events=events_deleted)
        return CleanupResult(
            success=not errors,
            files_deleted=files_deleted,
            events_deleted=events_deleted,
            error="; ".join(errors) if errors else None,
        )

    async def get_storage_info(self) -> StorageInfo:
        """Scan partitions and summarise their size and date span."""
        info = StorageInfo()
        try:
            dates = self.list_partition_dates()
        except OSError as e:
            logger.error("Failed to scan storage", error=str(e))
            return info

        for date in dates:
            path = self.partition_path(date)
            try:
                info.total_bytes += path.stat().st_size
            except OSError:
                continue
            info.total_files += 1
            partition = self._load_partition(path, date)
            if partition:
                info.total_events += len(partition.events)

        if dates:
            info.oldest_date = dates[0]
            info.newest_date = dates[-1]
        return info
