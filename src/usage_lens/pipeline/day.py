"""Day bag partitioning and the views derived from one day's documents."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from usage_lens.core.config import PipelineConfig
from usage_lens.pipeline.clusters import ActivityClusterer
from usage_lens.pipeline.delta import DeltaReconstructor
from usage_lens.pipeline.device_stats import (
    battery_percent,
    round_half_up,
    select_latest_device_stats,
)
from usage_lens.pipeline.formatting import format_app_name
from usage_lens.pipeline.schemas import ActivitySession, AppSession, AppUsage, UsageStats
from usage_lens.pipeline.sessions import SessionReconstructor
from usage_lens.store.base import (
    APP_USAGE_PREFIX,
    DEVICE_STATS_PREFIX,
    EVENTS_PREFIX,
    Document,
)
from usage_lens.store.documents import (
    AppUsageSnapshot,
    DeviceStatsSnapshot,
    DocumentParseError,
    UsageEvent,
    parse_app_usage,
    parse_device_stats,
    parse_event_batch,
)

logger = logging.getLogger(__name__)


def parse_day(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` day key."""
    if len(value) != 10:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD") from e


def today_key(tz: tzinfo, now: int | None = None) -> str:
    """Today's ``YYYY-MM-DD`` key in ``tz``; ``now`` is epoch ms."""
    moment = datetime.now(tz) if now is None else datetime.fromtimestamp(now / 1000, tz=tz)
    return moment.date().isoformat()


@dataclass
class DayBag:
    """Typed contents of one ``(device, date)`` document bag."""

    app_usage: list[AppUsageSnapshot] = field(default_factory=list)
    device_stats: list[DeviceStatsSnapshot] = field(default_factory=list)
    events: list[UsageEvent] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.app_usage or self.device_stats or self.events)

    @classmethod
    def from_documents(cls, documents: list[Document], strict: bool = True) -> DayBag:
        """Partition documents by id prefix and parse them.

        Args:
            documents: The raw day bag.
            strict: Raise on a malformed document instead of skipping it.

        Raises:
            DocumentParseError: In strict mode, on the first malformed document.
        """
        bag = cls()
        for document in documents:
            try:
                if document.id.startswith(APP_USAGE_PREFIX):
                    bag.app_usage.append(parse_app_usage(document))
                elif document.id.startswith(DEVICE_STATS_PREFIX):
                    bag.device_stats.append(parse_device_stats(document))
                elif document.id.startswith(EVENTS_PREFIX):
                    bag.events.extend(parse_event_batch(document).events)
                else:
                    logger.debug(f"Ignoring document {document.id}")
            except DocumentParseError as e:
                if strict:
                    raise
                logger.warning(f"Skipping {e}")
                bag.skipped.append(document.id)
        return bag


@dataclass
class AppShare:
    """One row of the dashboard's app list."""

    usage: AppUsage
    display_name: str
    share_percent: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            **self.usage.to_dict(),
            "displayName": self.display_name,
            "sharePercent": self.share_percent,
        }


@dataclass
class DashboardView:
    """Usage overview for a day."""

    usage_stats: UsageStats | None
    device_stats: DeviceStatsSnapshot | None
    apps: list[AppShare]
    battery_percent: int | None
    unlock_cadence_minutes: int

    @property
    def total_screen_time_ms(self) -> int:
        return self.usage_stats.total_screen_time_ms if self.usage_stats else 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "usageStats": self.usage_stats.to_dict() if self.usage_stats else None,
            "deviceStats": self.device_stats.to_dict() if self.device_stats else None,
            "totalScreenTimeMs": self.total_screen_time_ms,
            "apps": [app.to_dict() for app in self.apps],
            "batteryPercent": self.battery_percent,
            "unlockCadenceMinutes": self.unlock_cadence_minutes,
        }


@dataclass
class AppDetailView:
    """Session history of one app for a day."""

    package_name: str
    app_name: str
    sessions: list[AppSession]

    @property
    def total_duration_ms(self) -> int:
        return sum(s.duration_ms for s in self.sessions)

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    @property
    def avg_session_ms(self) -> int:
        if not self.sessions:
            return 0
        return self.total_duration_ms // len(self.sessions)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "packageName": self.package_name,
            "appName": self.app_name,
            "displayName": format_app_name(self.package_name, self.app_name),
            "totalDuration": self.total_duration_ms,
            "sessionCount": self.session_count,
            "avgSessionDuration": self.avg_session_ms,
            "sessions": [s.to_dict() for s in self.sessions],
        }


@dataclass
class ActivityTimeline:
    """Activity sessions of a day, most recent first."""

    sessions: list[ActivitySession]

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "totalSessions": self.session_count,
            "sessions": [s.to_dict() for s in self.sessions],
        }


class DayAnalyzer:
    """Build the dashboard, app-detail and activity views of a day bag.

    Each view reads a different subset of the bag and is computed from
    scratch on every call.
    """

    def __init__(self, config: PipelineConfig | None = None):
        self.config = config or PipelineConfig()
        self.tz = ZoneInfo(self.config.timezone)

        self.delta = DeltaReconstructor(grace_ms=self.config.usage_grace_ms)
        self.sessions = SessionReconstructor(
            noise_floor_ms=self.config.session_noise_floor_ms,
            unterminated_cap_ms=self.config.unterminated_session_cap_ms,
            tz=self.tz,
        )
        self.clusterer = ActivityClusterer(
            gap_ms=self.config.cluster_gap_ms,
            noise_floor_ms=self.config.cluster_noise_floor_ms,
            min_duration_ms=self.config.min_cluster_duration_ms,
            unknown_action=self.config.unknown_event_action,
        )

    def parse(self, documents: list[Document]) -> DayBag:
        """Parse a raw bag with the configured strictness."""
        return DayBag.from_documents(documents, strict=self.config.strict_documents)

    def dashboard(self, bag: DayBag, search: str = "") -> DashboardView:
        """Build the usage overview.

        Args:
            bag: Parsed day bag.
            search: Case-insensitive filter on display or raw app name.
        """
        usage_stats = self.delta.reconstruct(bag.app_usage)
        device_stats = select_latest_device_stats(bag.device_stats)

        total = usage_stats.total_screen_time_ms if usage_stats else 0
        apps = [
            AppShare(
                usage=app,
                display_name=format_app_name(app.package_name, app.app_name),
                share_percent=(
                    round_half_up(app.usage_time_ms / total * 100) if total > 0 else 0
                ),
            )
            for app in (usage_stats.apps if usage_stats else [])
        ]

        needle = search.strip().lower()
        if needle:
            apps = [
                a for a in apps
                if needle in a.display_name.lower() or needle in a.usage.app_name.lower()
            ]
        apps.sort(key=lambda a: a.usage.usage_time_ms, reverse=True)

        unlocks = device_stats.total_unlocks if device_stats else 0
        cadence = round_half_up(total / 60_000 / unlocks) if unlocks else 0

        return DashboardView(
            usage_stats=usage_stats,
            device_stats=device_stats,
            apps=apps,
            battery_percent=(
                battery_percent(device_stats.battery_level, self.config.battery_unit)
                if device_stats
                else None
            ),
            unlock_cadence_minutes=cadence,
        )

    def app_detail(self, bag: DayBag, package_name: str, day: date, now: int) -> AppDetailView:
        """Build the session history of one app."""
        sessions = self.sessions.reconstruct(bag.events, package_name, day, now)

        first = min(
            (e for e in bag.events if e.package_name == package_name),
            key=lambda e: e.timestamp,
            default=None,
        )
        app_name = first.app_name if first is not None and first.app_name else package_name

        return AppDetailView(package_name=package_name, app_name=app_name, sessions=sessions)

    def activity(self, bag: DayBag) -> ActivityTimeline:
        """Build the multi-app activity timeline."""
        return ActivityTimeline(sessions=self.clusterer.cluster(bag.events))
