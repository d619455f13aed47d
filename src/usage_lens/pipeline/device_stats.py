"""Latest device counters and battery unit handling."""

from __future__ import annotations

import math
from collections.abc import Iterable

from usage_lens.core.config import BatteryUnit
from usage_lens.store.documents import DeviceStatsSnapshot


def select_latest_device_stats(
    snapshots: Iterable[DeviceStatsSnapshot],
) -> DeviceStatsSnapshot | None:
    """Pick the most recent device snapshot.

    Device counters are already cumulative for the day, so the newest reading
    is shown as is. On equal timestamps the last one seen wins.
    """
    latest: DeviceStatsSnapshot | None = None
    for snapshot in snapshots:
        if latest is None or snapshot.timestamp >= latest.timestamp:
            latest = snapshot
    return latest


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up."""
    return math.floor(value + 0.5)


def battery_percent(level: float, unit: BatteryUnit = BatteryUnit.AUTO) -> int:
    """Convert a raw battery level to a whole percentage.

    Producers have written both a 0..1 fraction and a 0..100 percentage.
    ``AUTO`` guesses from the magnitude, which reads a genuine 1% charge
    written as a percentage as 100%. Pin the unit in config when the
    producer is known.
    """
    if unit is BatteryUnit.PERCENT:
        return round_half_up(level)
    if unit is BatteryUnit.FRACTION:
        return round_half_up(level * 100)
    return round_half_up(level) if level > 1 else round_half_up(level * 100)
