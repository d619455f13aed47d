"""Per-app usage deltas from cumulative usage snapshots."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from usage_lens.pipeline.schemas import AppUsage, UsageStats
from usage_lens.store.documents import AppUsageEntry, AppUsageSnapshot

logger = logging.getLogger(__name__)


class DeltaReconstructor:
    """Reconstruct a day's per-app usage from its usage snapshots.

    Usage counters are cumulative, so the usage for the monitored window is
    the difference between the latest and the earliest non-empty snapshot.
    Two corrections are applied on top of the plain difference:

    - Counter reset: when the latest reading is below the baseline (reboot,
      usage bucket rotation) the latest reading is used as is.
    - Window clamp: no app can be credited with more usage than the wall-clock
      time between the two snapshots plus a grace buffer. An app missing from
      the baseline (first snapshot after install) would otherwise carry its
      whole pre-install counter into the day.
    """

    DEFAULT_GRACE_MS = 60_000

    def __init__(self, grace_ms: int = DEFAULT_GRACE_MS):
        """Initialize the reconstructor.

        Args:
            grace_ms: Allowance added to the monitored window for clock and
                bucket skew between the usage counters and the wall clock.
        """
        self.grace_ms = grace_ms

    def reconstruct(self, snapshots: Iterable[AppUsageSnapshot]) -> UsageStats | None:
        """Compute usage deltas for a day.

        Args:
            snapshots: All usage snapshots of the day, in any order.

        Returns:
            UsageStats, or None when no snapshot lists any app.
        """
        valid = sorted((s for s in snapshots if s.apps), key=lambda s: s.timestamp)
        if not valid:
            return None

        earliest, latest = valid[0], valid[-1]

        monitoring_duration = max(0, latest.timestamp - earliest.timestamp)
        max_possible_usage = monitoring_duration + self.grace_ms

        baseline = {entry.package_name: entry for entry in earliest.apps}
        apps = [
            self._app_delta(entry, baseline.get(entry.package_name), max_possible_usage)
            for entry in latest.apps
        ]

        logger.debug(
            f"Usage window {earliest.timestamp} -> {latest.timestamp} "
            f"({len(valid)} snapshots, {len(earliest.apps)} baseline apps)"
        )

        return UsageStats(
            total_screen_time_ms=sum(app.usage_time_ms for app in apps),
            app_count=latest.reported_app_count,
            apps=apps,
            timestamp=latest.timestamp,
            baseline_timestamp=earliest.timestamp,
            monitoring_duration_ms=monitoring_duration,
        )

    def _app_delta(
        self,
        latest: AppUsageEntry,
        baseline: AppUsageEntry | None,
        max_possible_usage: int,
    ) -> AppUsage:
        candidate = latest.usage_time_ms
        if baseline is not None:
            delta = latest.usage_time_ms - baseline.usage_time_ms
            if delta >= 0:
                candidate = delta
            else:
                logger.debug(f"Counter reset for {latest.package_name}, using latest reading")

        return AppUsage(
            package_name=latest.package_name,
            app_name=latest.app_name,
            usage_time_ms=min(candidate, max_possible_usage),
            last_time_used=latest.last_time_used,
            launch_count=latest.launch_count,
        )
