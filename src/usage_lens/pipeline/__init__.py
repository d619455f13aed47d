"""Usage reconstruction pipeline.

Turns a day's cumulative usage snapshots, device counters and open/close
events into:
- Per-app usage deltas for the day
- Per-app usage sessions
- Multi-app activity sessions
"""

from usage_lens.pipeline.clusters import ActivityClusterer, infer_category
from usage_lens.pipeline.day import (
    ActivityTimeline,
    AppDetailView,
    DashboardView,
    DayAnalyzer,
    DayBag,
    parse_day,
    today_key,
)
from usage_lens.pipeline.delta import DeltaReconstructor
from usage_lens.pipeline.device_stats import battery_percent, select_latest_device_stats
from usage_lens.pipeline.schemas import (
    ActivityCategory,
    ActivitySession,
    AppSession,
    AppUsage,
    DominantApp,
    ThreadAction,
    ThreadSegment,
    UsageStats,
)
from usage_lens.pipeline.sessions import SessionReconstructor, is_today

__all__ = [
    # Schemas
    "ActivityCategory",
    "ActivitySession",
    "AppSession",
    "AppUsage",
    "DominantApp",
    "ThreadAction",
    "ThreadSegment",
    "UsageStats",
    # Reconstructors
    "DeltaReconstructor",
    "SessionReconstructor",
    "ActivityClusterer",
    "select_latest_device_stats",
    "battery_percent",
    "infer_category",
    "is_today",
    # Day views
    "DayAnalyzer",
    "DayBag",
    "DashboardView",
    "AppDetailView",
    "ActivityTimeline",
    "parse_day",
    "today_key",
]
