"""Day controller: owns the active (device, date) key and its derived state."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace

from usage_lens.pipeline.day import (
    ActivityTimeline,
    AppDetailView,
    DashboardView,
    DayAnalyzer,
    DayBag,
    parse_day,
)
from usage_lens.store.base import Document, DocumentStore, StoreUnavailableError, Subscription
from usage_lens.store.documents import DocumentParseError

logger = logging.getLogger(__name__)

StateListener = Callable[["DayState"], None]


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class DayState:
    """Everything a view needs for the active key."""

    device: str | None = None
    date: str | None = None
    loading: bool = False
    bag: DayBag | None = None
    dashboard: DashboardView | None = None
    activity: ActivityTimeline | None = None
    error: str | None = None
    updated_at: int | None = None

    @property
    def has_data(self) -> bool:
        return self.bag is not None and not self.bag.is_empty


class DayController:
    """Load, watch and analyze one day at a time.

    Selecting a new key tears down the previous subscription before opening
    the next one. Every delivery carries the generation it was requested
    under; deliveries and failures from an older generation are dropped so a
    slow response can never overwrite newer state.
    """

    def __init__(
        self,
        store: DocumentStore,
        analyzer: DayAnalyzer | None = None,
        live: bool = True,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize the controller.

        Args:
            store: Source of day documents.
            analyzer: Pipeline used on every delivery.
            live: Subscribe to changes instead of fetching once.
            clock: Returns the current time in epoch milliseconds.
        """
        self.store = store
        self.analyzer = analyzer or DayAnalyzer()
        self.live = live
        self.clock = clock

        self._state = DayState()
        self._generation = 0
        self._subscription: Subscription | None = None
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> DayState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback for state changes. Returns a remover."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _publish(self, state: DayState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    async def _teardown(self) -> None:
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            await subscription.close()

    async def select(self, device: str, date: str) -> DayState:
        """Switch to a new ``(device, date)`` key.

        Derived state for the previous key is discarded immediately.
        """
        self._generation += 1
        generation = self._generation
        await self._teardown()

        try:
            parse_day(date)
        except ValueError as e:
            self._publish(DayState(device=device, date=date, error=str(e)))
            return self._state

        self._publish(DayState(device=device, date=date, loading=True))
        logger.info(f"Loading {device}/{date}")

        if not self.live:
            return await self.refresh()

        try:
            subscription = await self.store.subscribe_day(
                device,
                date,
                lambda documents: self._on_documents(generation, documents),
                lambda error: self._on_error(generation, error),
            )
        except StoreUnavailableError as e:
            self._on_error(generation, e)
            return self._state

        if generation != self._generation:
            # Key changed while the subscription was opening
            await subscription.close()
        else:
            self._subscription = subscription
        return self._state

    async def refresh(self) -> DayState:
        """Fetch the active key once and recompute."""
        device, date = self._state.device, self._state.date
        if device is None or date is None:
            return self._state

        generation = self._generation
        try:
            documents = await self.store.fetch_day(device, date)
        except StoreUnavailableError as e:
            self._on_error(generation, e)
            return self._state

        self._on_documents(generation, documents)
        return self._state

    async def close(self) -> None:
        """Stop watching. Results still in flight are dropped."""
        self._generation += 1
        await self._teardown()

    def _is_stale(self, generation: int) -> bool:
        if generation != self._generation:
            logger.debug(f"Dropping result of stale generation {generation}")
            return True
        return False

    def _on_documents(self, generation: int, documents: list[Document]) -> None:
        if self._is_stale(generation):
            return

        base = DayState(device=self._state.device, date=self._state.date)
        try:
            bag = self.analyzer.parse(documents)
        except DocumentParseError as e:
            logger.error(f"Cannot analyze {base.device}/{base.date}: {e}")
            self._publish(replace(base, error=str(e)))
            return

        if bag.is_empty:
            self._publish(replace(base, bag=bag, updated_at=self.clock()))
            return

        self._publish(
            replace(
                base,
                bag=bag,
                dashboard=self.analyzer.dashboard(bag),
                activity=self.analyzer.activity(bag),
                updated_at=self.clock(),
            )
        )

    def _on_error(self, generation: int, error: Exception) -> None:
        if self._is_stale(generation):
            return
        logger.error(f"Error fetching {self._state.device}/{self._state.date}: {error}")
        self._publish(
            DayState(
                device=self._state.device,
                date=self._state.date,
                error=f"Data Fetch Error: {error}",
            )
        )

    def app_detail(self, package_name: str) -> AppDetailView | None:
        """Session history of one app from the active day's events."""
        if self._state.bag is None or self._state.date is None:
            return None
        return self.analyzer.app_detail(
            self._state.bag, package_name, parse_day(self._state.date), self.clock()
        )
