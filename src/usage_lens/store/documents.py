"""Pydantic schemas for documents written by the monitoring app.

This is the validation boundary between loosely typed store payloads and the
reconstruction pipeline. Fields used in arithmetic are required; display-only
fields get defaults.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from usage_lens.store.base import Document


class DocumentParseError(ValueError):
    """A store document did not match the expected shape."""

    def __init__(self, document_id: str, detail: str):
        self.document_id = document_id
        self.detail = detail
        super().__init__(f"Malformed document {document_id}: {detail}")


class EventType(str, Enum):
    """App lifecycle event types as written by the producer."""

    OPEN = "APP_OPENED"
    CLOSE = "APP_CLOSED"
    UNKNOWN = "UNKNOWN"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", frozen=True, allow_inf_nan=False
    )


class AppUsageEntry(_WireModel):
    """Cumulative usage counters for one app."""

    package_name: str = Field(
        min_length=1, validation_alias=AliasChoices("packageName", "package_name", "pkg")
    )
    app_name: str = Field(default="", validation_alias=AliasChoices("appName", "app_name"))
    usage_time_ms: int = Field(ge=0, validation_alias=AliasChoices("usageTimeMs", "usage_time_ms"))
    last_time_used: int = Field(
        default=0, validation_alias=AliasChoices("lastTimeUsed", "last_time_used")
    )
    launch_count: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("launchCount", "launch_count")
    )

    @field_validator("app_name", mode="before")
    @classmethod
    def _none_name(cls, v: Any) -> Any:
        return "" if v is None else v


class AppUsageSnapshot(_WireModel):
    """A reading of every app's cumulative counters at ``timestamp``."""

    total_screen_time_ms: int = Field(
        default=0, validation_alias=AliasChoices("totalScreenTimeMs", "total_screen_time_ms")
    )
    app_count: int | None = Field(default=None, validation_alias=AliasChoices("appCount", "app_count"))
    apps: list[AppUsageEntry] = Field(default_factory=list)
    timestamp: int

    @field_validator("apps", mode="before")
    @classmethod
    def _none_apps(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def reported_app_count(self) -> int:
        """App count as reported, or the number of entries when absent."""
        return self.app_count if self.app_count is not None else len(self.apps)


class DeviceStatsSnapshot(_WireModel):
    """Device-wide counters at ``timestamp``."""

    battery_level: float = Field(validation_alias=AliasChoices("batteryLevel", "battery_level"))
    is_charging: bool = Field(default=False, validation_alias=AliasChoices("isCharging", "is_charging"))
    total_unlocks: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("totalUnlocks", "total_unlocks")
    )
    screen_on_time_ms: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("screenOnTimeMs", "screen_on_time_ms")
    )
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape."""
        return {
            "batteryLevel": self.battery_level,
            "isCharging": self.is_charging,
            "totalUnlocks": self.total_unlocks,
            "screenOnTimeMs": self.screen_on_time_ms,
            "timestamp": self.timestamp,
        }


class UsageEvent(_WireModel):
    """A single app open/close event."""

    package_name: str = Field(
        min_length=1, validation_alias=AliasChoices("packageName", "package_name")
    )
    app_name: str = Field(default="", validation_alias=AliasChoices("appName", "app_name"))
    event_type: EventType = Field(
        default=EventType.UNKNOWN, validation_alias=AliasChoices("eventType", "event_type")
    )
    timestamp: int
    time: str | None = None

    @field_validator("event_type", mode="before")
    @classmethod
    def _coerce_event_type(cls, v: Any) -> EventType:
        if isinstance(v, EventType):
            return v
        try:
            return EventType(v)
        except ValueError:
            return EventType.UNKNOWN

    @field_validator("app_name", mode="before")
    @classmethod
    def _none_name(cls, v: Any) -> Any:
        return "" if v is None else v


class EventBatch(_WireModel):
    """A batch of events uploaded together."""

    events: list[UsageEvent] = Field(default_factory=list)

    @field_validator("events", mode="before")
    @classmethod
    def _none_events(cls, v: Any) -> Any:
        return [] if v is None else v


def _describe(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err["loc"]) or "<root>"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def _parse(model: type[_WireModel], document: Document) -> Any:
    try:
        return model.model_validate(document.data)
    except ValidationError as e:
        raise DocumentParseError(document.id, _describe(e)) from e


def parse_app_usage(document: Document) -> AppUsageSnapshot:
    """Parse an ``app_usage_*`` document."""
    return _parse(AppUsageSnapshot, document)


def parse_device_stats(document: Document) -> DeviceStatsSnapshot:
    """Parse a ``device_*`` document."""
    return _parse(DeviceStatsSnapshot, document)


def parse_event_batch(document: Document) -> EventBatch:
    """Parse an ``events_*`` document."""
    return _parse(EventBatch, document)
