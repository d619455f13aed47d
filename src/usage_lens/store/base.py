"""Document store interface shared by all adapters."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

APP_USAGE_PREFIX = "app_usage_"
DEVICE_STATS_PREFIX = "device_"
EVENTS_PREFIX = "events_"

DocumentsCallback = Callable[[list["Document"]], None]
ErrorCallback = Callable[[Exception], None]


class StoreUnavailableError(Exception):
    """The document store could not be reached or refused the request."""


@dataclass(frozen=True)
class Document:
    """A raw document from the store, keyed by its id within a day."""

    id: str
    data: dict[str, Any] = field(default_factory=dict)


class Subscription(ABC):
    """Handle for a live day subscription."""

    @abstractmethod
    async def close(self) -> None:
        """Stop delivering updates. Safe to call more than once."""


class DocumentStore(ABC):
    """Read-only source of per-device, per-day document bags."""

    @abstractmethod
    async def list_devices(self) -> list[str]:
        """Enumerate device ids known to the store."""

    @abstractmethod
    async def fetch_day(self, device: str, date: str) -> list[Document]:
        """Fetch every document stored under ``(device, date)``."""

    @abstractmethod
    async def subscribe_day(
        self,
        device: str,
        date: str,
        on_documents: DocumentsCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Deliver the full bag for ``(device, date)`` now and on every change."""

    async def close(self) -> None:
        """Release any held resources."""


class CallbackSubscription(Subscription):
    """Subscription backed by a detach callback."""

    def __init__(self, detach: Callable[[], None]):
        self._detach: Callable[[], None] | None = detach

    @property
    def is_closed(self) -> bool:
        return self._detach is None

    async def close(self) -> None:
        if self._detach is None:
            return
        detach, self._detach = self._detach, None
        detach()


def deliver(
    documents: list[Document],
    on_documents: DocumentsCallback,
    on_error: ErrorCallback | None,
) -> None:
    """Invoke a subscriber, routing its failure to ``on_error``."""
    try:
        on_documents(documents)
    except Exception as e:
        if on_error is None:
            raise
        logger.error(f"Subscriber failed handling {len(documents)} documents: {e}")
        on_error(e)
