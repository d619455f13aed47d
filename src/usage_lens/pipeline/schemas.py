"""Derived entities produced by the usage reconstruction pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ActivityCategory(str, Enum):
    """Coarse label for an activity session, inferred from its dominant app."""

    GAME = "Game"
    SOCIAL = "Social"
    PRODUCTIVITY = "Productivity"
    GENERAL = "General"


class ThreadAction(str, Enum):
    """What happened at one step of an activity thread."""

    OPEN = "OPEN"
    CLOSE = "CLOSE"
    UNKNOWN = "UNKNOWN"


@dataclass
class AppUsage:
    """Usage attributed to one app over the monitored window."""

    package_name: str
    app_name: str
    usage_time_ms: int  # clamped delta, not the cumulative counter
    last_time_used: int = 0
    launch_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "packageName": self.package_name,
            "appName": self.app_name,
            "usageTimeMs": self.usage_time_ms,
            "lastTimeUsed": self.last_time_used,
            "launchCount": self.launch_count,
        }


@dataclass
class UsageStats:
    """Per-app usage for a day, reconstructed from cumulative snapshots."""

    total_screen_time_ms: int
    app_count: int
    apps: list[AppUsage]
    timestamp: int  # latest snapshot, shown as "last updated"
    baseline_timestamp: int
    monitoring_duration_ms: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "totalScreenTimeMs": self.total_screen_time_ms,
            "appCount": self.app_count,
            "apps": [app.to_dict() for app in self.apps],
            "timestamp": self.timestamp,
            "baselineTimestamp": self.baseline_timestamp,
            "monitoringDurationMs": self.monitoring_duration_ms,
        }


@dataclass
class AppSession:
    """A contiguous stretch of use of a single app."""

    start_time: int
    end_time: int | None  # None only while the session is still running
    duration_ms: int
    is_ongoing: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "durationMs": self.duration_ms,
            "isOngoing": self.is_ongoing,
        }


@dataclass
class DominantApp:
    """The app with the most events in an activity session."""

    name: str = "Unknown"
    pkg: str = ""
    usage: int = 0  # event count

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"name": self.name, "pkg": self.pkg, "usage": self.usage}


@dataclass
class ThreadSegment:
    """One event inside an activity session."""

    idx: int
    pkg: str
    app_name: str
    action: ThreadAction
    timestamp: int
    duration_ms: int = 0  # gap until the next event in the thread

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "idx": self.idx,
            "pkg": self.pkg,
            "appName": self.app_name,
            "action": self.action.value,
            "timestamp": self.timestamp,
            "durationMs": self.duration_ms,
        }


@dataclass
class ActivitySession:
    """A period of continuous phone engagement, possibly across many apps."""

    start_time: int
    end_time: int
    total_duration: int
    dominant_app: DominantApp
    app_count: int
    thread: list[ThreadSegment] = field(default_factory=list)
    category: ActivityCategory = ActivityCategory.GENERAL

    @property
    def id(self) -> str:
        return str(self.start_time)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "totalDuration": self.total_duration,
            "dominantApp": self.dominant_app.to_dict(),
            "appCount": self.app_count,
            "thread": [segment.to_dict() for segment in self.thread],
            "category": self.category.value,
        }
