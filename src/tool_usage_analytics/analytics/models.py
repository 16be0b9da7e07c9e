"""
Core data model for usage analytics.

Defines the recorded event, the on-disk daily partition, the result values
returned by the event store and the analytics exception hierarchy.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..toolnames import TOOL_NAMES, is_known_tool
from ..utils.dates import parse_date

SCHEMA_VERSION = "1.0.0"


class ErrorCategory(str, Enum):
    """Closed set of failure categories attached to unsuccessful events."""

    VALIDATION = "validation"
    RUNTIME = "runtime"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


ERROR_CATEGORIES: List[str] = [category.value for category in ErrorCategory]


class AnalyticsError(Exception):
    """Base exception for analytics failures."""

    def __init__(
        self, message: str, code: str = "analytics_error", details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class StorageError(AnalyticsError):
    """Error reading or writing partition files."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="storage_error", details=details)


class LockTimeoutError(AnalyticsError):
    """Partition lock could not be acquired in time."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="lock_timeout", details=details)


class AnalyticsEvent(BaseModel):
    """One recorded tool invocation. Serialised with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, use_enum_values=True)

    tool_name: str = Field(alias="toolName", description="Name of the invoked tool")
    timestamp: str = Field(description="ISO-8601 invocation time")
    success: bool = Field(description="Whether the invocation succeeded")
    duration_ms: float = Field(alias="durationMs", ge=0, description="Invocation duration")
    session_id: str = Field(alias="sessionId", description="Opaque session identifier")
    error_category: Optional[ErrorCategory] = Field(
        default=None, alias="errorCategory", description="Failure category"
    )

    @field_validator("tool_name")
    @classmethod
    def validate_tool_name(cls, v: str) -> str:
        """Only registered tools may be recorded."""
        if not is_known_tool(v):
            raise ValueError(f"Unknown tool: {v}. Must be one of {TOOL_NAMES}")
        return v

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: str) -> str:
        """The first ten characters must form a calendar date."""
        try:
            parse_date(v)
        except ValueError:
            raise ValueError(f"Invalid timestamp: {v}")
        return v

    @model_validator(mode="after")
    def check_error_category(self) -> "AnalyticsEvent":
        if self.success and self.error_category is not None:
            raise ValueError("errorCategory is only allowed on failed events")
        return self

    @property
    def date(self) -> str:
        """Calendar date that selects the event's partition."""
        return self.timestamp[:10]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire format."""
        return self.model_dump(by_alias=True, exclude_none=True)


class DailyPartition(BaseModel):
    """Contents of one partition file."""

    model_config = ConfigDict(populate_by_name=True)

    schema_version: str = Field(default=SCHEMA_VERSION, alias="schemaVersion")
    date: str
    events: List[AnalyticsEvent] = Field(default_factory=list)
    last_modified: str = Field(alias="lastModified")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "date": self.date,
            "events": [event.to_dict() for event in self.events],
            "lastModified": self.last_modified,
        }


@dataclass
class WriteResult:
    """Outcome of appending events."""

    success: bool
    events_written: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success, "eventsWritten": self.events_written}
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class ReadResult:
    """Outcome of reading events over a date window."""

    success: bool
    events: List[AnalyticsEvent] = field(default_factory=list)
    date_range: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": self.success,
            "events": [event.to_dict() for event in self.events],
            "dateRange": self.date_range,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class CleanupResult:
    """Outcome of a retention cleanup run."""

    success: bool
    files_deleted: int = 0
    events_deleted: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": self.success,
            "filesDeleted": self.files_deleted,
            "eventsDeleted": self.events_deleted,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class StorageInfo:
    """Summary of what is currently on disk."""

    total_files: int = 0
    total_events: int = 0
    total_bytes: int = 0
    oldest_date: Optional[str] = None
    newest_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalFiles": self.total_files,
            "totalEvents": self.total_events,
            "totalBytes": self.total_bytes,
            "oldestDate": self.oldest_date,
            "newestDate": self.newest_date,
        }
