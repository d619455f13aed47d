"""Tests for the day controller lifecycle."""

import asyncio

import pytest

from tests.factories import MINUTE, T0, app_entry, usage_doc
from usage_lens.core.config import PipelineConfig
from usage_lens.core.controller import DayController
from usage_lens.pipeline.day import DayAnalyzer
from usage_lens.store.base import CallbackSubscription, DocumentStore


def fixed_clock():
    return T0 + 26 * 3_600_000


@pytest.fixture
def controller(sample_day):
    return DayController(sample_day, clock=fixed_clock)


class TestSelect:
    async def test_live_select_publishes_views(self, controller, sample_day):
        states = []
        controller.add_listener(states.append)

        state = await controller.select("d1", "2024-05-20")

        assert states[0].loading
        assert not state.loading
        assert state.error is None
        assert state.has_data
        assert state.dashboard.total_screen_time_ms == 500_000
        # Open and close are minutes apart, too far to form an activity
        assert state.activity.session_count == 0
        assert state.updated_at == fixed_clock()
        assert sample_day.subscriber_count("d1", "2024-05-20") == 1

    async def test_one_shot_select(self, sample_day):
        controller = DayController(sample_day, live=False)

        state = await controller.select("d1", "2024-05-20")

        assert state.dashboard.total_screen_time_ms == 500_000
        assert sample_day.fetch_count == 1
        assert sample_day.subscriber_count("d1", "2024-05-20") == 0

    async def test_invalid_date(self, controller, sample_day):
        state = await controller.select("d1", "20-05-2024")

        assert "expected YYYY-MM-DD" in state.error
        assert state.dashboard is None
        assert sample_day.subscriber_count("d1", "20-05-2024") == 0

    async def test_empty_day_clears_without_error(self, controller):
        await controller.select("d1", "2024-05-20")
        state = await controller.select("d1", "2024-05-21")

        assert state.error is None
        assert not state.has_data
        assert state.dashboard is None
        assert state.activity is None

    async def test_live_update_recomputes(self, controller, sample_day):
        await controller.select("d1", "2024-05-20")

        sample_day.put(
            "d1", "2024-05-20", "app_usage_0820",
            usage_doc(T0 + 20 * MINUTE, [app_entry("com.whatsapp", 800_000)]),
        )

        assert controller.state.dashboard.total_screen_time_ms == 800_000

    async def test_switch_tears_down_previous(self, controller, sample_day):
        await controller.select("d1", "2024-05-20")
        await controller.select("d1", "2024-05-21")

        assert sample_day.subscriber_count("d1", "2024-05-20") == 0
        assert sample_day.subscriber_count("d1", "2024-05-21") == 1

        # Changes to the old key no longer reach the controller
        sample_day.put("d1", "2024-05-20", "app_usage_x", usage_doc(T0, [app_entry("a.b", 1)]))
        assert controller.state.date == "2024-05-21"
        assert not controller.state.has_data

    async def test_close(self, controller, sample_day):
        await controller.select("d1", "2024-05-20")
        await controller.close()

        assert sample_day.subscriber_count("d1", "2024-05-20") == 0


class TestErrors:
    async def test_store_unavailable(self, controller, sample_day):
        sample_day.available = False

        state = await controller.select("d1", "2024-05-20")

        assert state.error.startswith("Data Fetch Error:")
        assert state.dashboard is None
        assert state.bag is None

    async def test_store_unavailable_one_shot(self, sample_day):
        sample_day.available = False
        controller = DayController(sample_day, live=False)

        state = await controller.select("d1", "2024-05-20")

        assert state.error.startswith("Data Fetch Error:")

    async def test_malformed_document_strict(self, controller, sample_day):
        sample_day.put("d1", "2024-05-20", "app_usage_bad", {"apps": []})

        state = await controller.select("d1", "2024-05-20")

        assert "app_usage_bad" in state.error
        assert state.dashboard is None

    async def test_malformed_document_lenient(self, sample_day):
        sample_day.put("d1", "2024-05-20", "app_usage_bad", {"apps": []})
        controller = DayController(
            sample_day, DayAnalyzer(PipelineConfig(strict_documents=False))
        )

        state = await controller.select("d1", "2024-05-20")

        assert state.error is None
        assert state.bag.skipped == ["app_usage_bad"]
        assert state.dashboard.total_screen_time_ms == 500_000


class DeferredStore(DocumentStore):
    """Store whose deliveries are released by the test."""

    def __init__(self):
        self.pending = {}
        self.closed = []

    async def list_devices(self):
        return []

    async def fetch_day(self, device, date):
        return []

    async def subscribe_day(self, device, date, on_documents, on_error=None):
        self.pending[date] = (on_documents, on_error)
        return CallbackSubscription(lambda: self.closed.append(date))


class TestStaleResults:
    async def test_late_delivery_for_old_key_is_dropped(self):
        store = DeferredStore()
        controller = DayController(store)

        await controller.select("d1", "2024-05-20")
        await controller.select("d1", "2024-05-21")
        assert store.closed == ["2024-05-20"]

        old_on_documents, _ = store.pending["2024-05-20"]
        old_on_documents([])

        assert controller.state.date == "2024-05-21"
        assert controller.state.loading

    async def test_late_error_for_old_key_is_dropped(self):
        store = DeferredStore()
        controller = DayController(store)

        await controller.select("d1", "2024-05-20")
        await controller.select("d1", "2024-05-21")

        _, old_on_error = store.pending["2024-05-20"]
        old_on_error(RuntimeError("boom"))

        assert controller.state.error is None

    async def test_subscription_opened_after_switch_is_closed(self):
        class SlowStore(DeferredStore):
            async def subscribe_day(self, device, date, on_documents, on_error=None):
                if date == "2024-05-20":
                    await asyncio.sleep(0.05)
                return await super().subscribe_day(device, date, on_documents, on_error)

        store = SlowStore()
        controller = DayController(store)

        slow = asyncio.create_task(controller.select("d1", "2024-05-20"))
        await asyncio.sleep(0)
        await controller.select("d1", "2024-05-21")
        await slow

        assert "2024-05-20" in store.closed
        assert controller.state.date == "2024-05-21"


class TestAppDetail:
    async def test_app_detail_uses_active_day(self, controller):
        await controller.select("d1", "2024-05-20")

        view = controller.app_detail("com.whatsapp")

        assert view.session_count == 1
        assert view.total_duration_ms == 5 * MINUTE

    async def test_app_detail_without_data(self, controller):
        assert controller.app_detail("com.whatsapp") is None


class TestNonFiniteValues:
    @pytest.mark.parametrize("level", [float("nan"), float("inf")])
    async def test_non_finite_battery_is_an_error_state(self, sample_day, level):
        sample_day.put("d1", "2024-05-20", "device_0820", {"batteryLevel": level, "timestamp": T0})
        controller = DayController(sample_day, live=False)

        state = await controller.select("d1", "2024-05-20")

        assert "device_0820" in state.error
        assert state.dashboard is None

    async def test_non_finite_battery_skipped_when_lenient(self, sample_day):
        sample_day.put(
            "d1", "2024-05-20", "device_0820", {"batteryLevel": float("nan"), "timestamp": T0}
        )
        controller = DayController(
            sample_day, DayAnalyzer(PipelineConfig(strict_documents=False)), live=False
        )

        state = await controller.select("d1", "2024-05-20")

        assert state.error is None
        assert state.bag.skipped == ["device_0820"]
        assert state.dashboard.battery_percent == 82
