"""Single-app session reconstruction from open/close events."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timezone, tzinfo

from usage_lens.pipeline.schemas import AppSession
from usage_lens.store.documents import EventType, UsageEvent

logger = logging.getLogger(__name__)


def is_today(day: date, now: int, tz: tzinfo = timezone.utc) -> bool:
    """Whether ``day`` is the calendar day of ``now`` (epoch ms) in ``tz``."""
    return datetime.fromtimestamp(now / 1000, tz=tz).date() == day


class SessionReconstructor:
    """Rebuild usage sessions of one app from its event stream.

    Rules:
    - An OPEN while a session is pending closes the pending one at the new
      OPEN (the close event was lost).
    - A CLOSE without a pending OPEN is dropped.
    - A session still open at the end of the stream is ongoing when the day
      is today, otherwise it is closed after a fixed cap since its real end
      cannot be known.
    - Sessions no longer than the noise floor are dropped.
    """

    DEFAULT_NOISE_FLOOR_MS = 60_000
    DEFAULT_UNTERMINATED_CAP_MS = 3_600_000

    def __init__(
        self,
        noise_floor_ms: int = DEFAULT_NOISE_FLOOR_MS,
        unterminated_cap_ms: int = DEFAULT_UNTERMINATED_CAP_MS,
        tz: tzinfo = timezone.utc,
    ):
        self.noise_floor_ms = noise_floor_ms
        self.unterminated_cap_ms = unterminated_cap_ms
        self.tz = tz

    def reconstruct(
        self,
        events: Iterable[UsageEvent],
        target_package: str,
        day: date,
        now: int,
    ) -> list[AppSession]:
        """Reconstruct sessions for one app.

        Args:
            events: Events of the day for any app, in any order.
            target_package: Package name to reconstruct sessions for.
            day: The calendar day the events were recorded under.
            now: Current time in epoch milliseconds.

        Returns:
            Sessions longer than the noise floor, most recent first.
        """
        app_events = sorted(
            (e for e in events if e.package_name == target_package),
            key=lambda e: e.timestamp,
        )

        sessions: list[AppSession] = []
        current_start: UsageEvent | None = None

        for event in app_events:
            if event.event_type is EventType.OPEN:
                if current_start is not None:
                    sessions.append(self._closed(current_start.timestamp, event.timestamp))
                current_start = event
            elif event.event_type is EventType.CLOSE:
                if current_start is not None:
                    sessions.append(self._closed(current_start.timestamp, event.timestamp))
                    current_start = None

        if current_start is not None:
            start = current_start.timestamp
            if is_today(day, now, self.tz):
                sessions.append(
                    AppSession(
                        start_time=start,
                        end_time=None,
                        duration_ms=now - start,
                        is_ongoing=True,
                    )
                )
            else:
                sessions.append(self._closed(start, start + self.unterminated_cap_ms))

        meaningful = [s for s in sessions if s.duration_ms > self.noise_floor_ms]
        logger.debug(
            f"{target_package}: {len(app_events)} events -> "
            f"{len(meaningful)}/{len(sessions)} sessions kept"
        )

        meaningful.reverse()
        return meaningful

    @staticmethod
    def _closed(start: int, end: int) -> AppSession:
        return AppSession(start_time=start, end_time=end, duration_ms=end - start)
