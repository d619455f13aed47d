"""Tests for device snapshot selection and battery conversion."""

import pytest

from tests.factories import T0, device_snapshot
from usage_lens.core.config import BatteryUnit
from usage_lens.pipeline.device_stats import battery_percent, select_latest_device_stats


def test_no_snapshots():
    assert select_latest_device_stats([]) is None


def test_latest_by_timestamp():
    snapshots = [
        device_snapshot(T0 + 2_000, unlocks=9),
        device_snapshot(T0, unlocks=3),
        device_snapshot(T0 + 1_000, unlocks=5),
    ]

    assert select_latest_device_stats(snapshots).total_unlocks == 9


def test_tie_goes_to_last_seen():
    snapshots = [device_snapshot(T0, unlocks=1), device_snapshot(T0, unlocks=2)]

    assert select_latest_device_stats(snapshots).total_unlocks == 2


@pytest.mark.parametrize(
    "level,expected",
    [(0.82, 82), (0.005, 1), (1.0, 100), (0.0, 0), (87, 87), (54.5, 55)],
)
def test_battery_auto(level, expected):
    assert battery_percent(level) == expected


def test_battery_auto_misreads_one_percent():
    # A 1% charge written as a percentage reads as full
    assert battery_percent(1) == 100
    assert battery_percent(1, BatteryUnit.PERCENT) == 1


def test_battery_fraction():
    assert battery_percent(0.4, BatteryUnit.FRACTION) == 40


def test_battery_percent():
    assert battery_percent(0.4, BatteryUnit.PERCENT) == 0
    assert battery_percent(73, BatteryUnit.PERCENT) == 73
