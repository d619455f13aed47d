"""Live subscriptions emulated by polling a one-shot fetch."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections.abc import Awaitable, Callable

from usage_lens.store.base import (
    Document,
    DocumentsCallback,
    ErrorCallback,
    Subscription,
    deliver,
)

logger = logging.getLogger(__name__)


def fingerprint(documents: list[Document]) -> str:
    """Stable digest of a document bag, independent of document order."""
    payload = json.dumps(
        sorted(([d.id, d.data] for d in documents), key=lambda pair: pair[0]),
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(payload.encode()).hexdigest()


class PollingSubscription(Subscription):
    """Re-fetch a day periodically and push the bag whenever it changes.

    The first successful fetch is always delivered. Fetch failures are
    reported to ``on_error`` and polling continues.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[list[Document]]],
        on_documents: DocumentsCallback,
        on_error: ErrorCallback | None = None,
        interval: float = 15.0,
        name: str = "day",
    ):
        self._fetch = fetch
        self._on_documents = on_documents
        self._on_error = on_error
        self._interval = interval
        self._name = name

        self._last_fingerprint: str | None = None
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Fetch once, deliver, then keep polling in the background."""
        if self._running:
            return
        self._running = True
        await self.poll_once()
        self._task = asyncio.create_task(self._poll_loop())
        logger.debug(f"Polling {self._name} every {self._interval}s")

    async def close(self) -> None:
        if not self._running:
            return
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.debug(f"Stopped polling {self._name}")

    async def poll_once(self) -> bool:
        """Fetch the day and deliver it if it changed.

        Returns:
            True if the bag was delivered.
        """
        try:
            documents = await self._fetch()
        except Exception as e:
            # Deliver the next success even if unchanged
            self._last_fingerprint = None
            if self._on_error is None:
                raise
            logger.error(f"Poll of {self._name} failed: {e}")
            self._on_error(e)
            return False

        current = fingerprint(documents)
        if current == self._last_fingerprint:
            return False

        self._last_fingerprint = current
        if self._running:
            deliver(documents, self._on_documents, self._on_error)
        return True

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._interval)
                if self._running:
                    await self.poll_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in poll loop for {self._name}: {e}")
