"""Multi-app activity sessions clustered from the day's event stream."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from usage_lens.core.config import UnknownEventAction
from usage_lens.pipeline.schemas import (
    ActivityCategory,
    ActivitySession,
    DominantApp,
    ThreadAction,
    ThreadSegment,
)
from usage_lens.store.documents import EventType, UsageEvent

logger = logging.getLogger(__name__)


# Keywords matched against the dominant app's name, checked in order
CATEGORY_KEYWORDS: list[tuple[ActivityCategory, tuple[str, ...]]] = [
    (ActivityCategory.GAME, ("pubg", "cod", "game", "clash")),
    (ActivityCategory.SOCIAL, ("whatsapp", "instagram", "snapchat", "telegram")),
    (ActivityCategory.PRODUCTIVITY, ("docs", "sheets", "mail", "slack")),
]


def infer_category(app_name: str) -> ActivityCategory:
    """Categorise an activity by substring match on its dominant app name."""
    lower = app_name.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lower for keyword in keywords):
            return category
    return ActivityCategory.GENERAL


def find_dominant_app(events: list[UsageEvent]) -> DominantApp:
    """Find the app name with the most events.

    Ties go to the app that appeared first in ``events``. This depends on
    event order and is arbitrary, but stable for a given stream.
    """
    counts: dict[str, int] = {}
    for event in events:
        counts[event.app_name] = counts.get(event.app_name, 0) + 1

    dominant = DominantApp()
    for name, count in counts.items():
        if count > dominant.usage:
            pkg = next(e.package_name for e in events if e.app_name == name)
            dominant = DominantApp(name=name, pkg=pkg, usage=count)
    return dominant


class ActivityClusterer:
    """Group the day's events into activity sessions by temporal proximity.

    Events closer than the gap threshold to their predecessor belong to the
    same session. One left-to-right pass over the sorted stream.
    """

    DEFAULT_GAP_MS = 120_000
    DEFAULT_NOISE_FLOOR_MS = 10_000
    DEFAULT_MIN_DURATION_MS = 1_000

    def __init__(
        self,
        gap_ms: int = DEFAULT_GAP_MS,
        noise_floor_ms: int = DEFAULT_NOISE_FLOOR_MS,
        min_duration_ms: int = DEFAULT_MIN_DURATION_MS,
        unknown_action: UnknownEventAction = UnknownEventAction.CLOSE,
    ):
        """Initialize the clusterer.

        Args:
            gap_ms: A gap of at least this long starts a new session.
            noise_floor_ms: Sessions no longer than this are dropped.
            min_duration_ms: Floor applied to a session's duration.
            unknown_action: Thread action for events of unknown type.
        """
        self.gap_ms = gap_ms
        self.noise_floor_ms = noise_floor_ms
        self.min_duration_ms = min_duration_ms
        self.unknown_action = ThreadAction(unknown_action.value)

    def cluster(self, events: Iterable[UsageEvent]) -> list[ActivitySession]:
        """Cluster events into activity sessions.

        Args:
            events: All events of the day, any app, any order.

        Returns:
            Sessions longer than the noise floor, most recent first.
        """
        ordered = sorted(events, key=lambda e: e.timestamp)
        if not ordered:
            return []

        clusters: list[list[UsageEvent]] = []
        current: list[UsageEvent] = [ordered[0]]

        for prev, curr in zip(ordered, ordered[1:]):
            if curr.timestamp - prev.timestamp < self.gap_ms:
                current.append(curr)
            else:
                clusters.append(current)
                current = [curr]
        clusters.append(current)

        sessions = [self.build_session(c) for c in clusters]
        meaningful = [s for s in sessions if s.total_duration > self.noise_floor_ms]

        logger.debug(
            f"Clustered {len(ordered)} events into {len(clusters)} sessions, "
            f"{len(meaningful)} above noise floor"
        )

        meaningful.reverse()
        return meaningful

    def build_session(self, events: list[UsageEvent]) -> ActivitySession:
        """Summarise one cluster of chronologically ordered events."""
        start_time = events[0].timestamp
        end_time = events[-1].timestamp
        total_duration = max(end_time - start_time, self.min_duration_ms)

        dominant = find_dominant_app(events)

        return ActivitySession(
            start_time=start_time,
            end_time=end_time,
            total_duration=total_duration,
            dominant_app=dominant,
            app_count=len({e.package_name for e in events}),
            thread=self._build_thread(events),
            category=infer_category(dominant.name),
        )

    def _build_thread(self, events: list[UsageEvent]) -> list[ThreadSegment]:
        thread = []
        for idx, event in enumerate(events):
            next_ts = events[idx + 1].timestamp if idx + 1 < len(events) else event.timestamp
            thread.append(
                ThreadSegment(
                    idx=idx,
                    pkg=event.package_name,
                    app_name=event.app_name,
                    action=self._action(event.event_type),
                    timestamp=event.timestamp,
                    duration_ms=next_ts - event.timestamp,
                )
            )
        return thread

    def _action(self, event_type: EventType) -> ThreadAction:
        if event_type is EventType.OPEN:
            return ThreadAction.OPEN
        if event_type is EventType.CLOSE:
            return ThreadAction.CLOSE
        return self.unknown_action
