"""In-process document store with push-on-change subscriptions."""

from __future__ import annotations

import logging
from typing import Any

from usage_lens.store.base import (
    CallbackSubscription,
    Document,
    DocumentsCallback,
    DocumentStore,
    ErrorCallback,
    StoreUnavailableError,
    Subscription,
    deliver,
)

logger = logging.getLogger(__name__)

DayKey = tuple[str, str]


class InMemoryDocumentStore(DocumentStore):
    """Document store held in memory.

    Every ``put``/``delete`` pushes the full bag to the subscribers of that
    day, like a live snapshot listener. ``available`` can be switched off to
    make every call fail with ``StoreUnavailableError``.
    """

    def __init__(self, devices: list[str] | None = None):
        self._devices: list[str] = list(devices or [])
        self._days: dict[DayKey, dict[str, dict[str, Any]]] = {}
        self._subscribers: dict[DayKey, list[tuple[DocumentsCallback, ErrorCallback | None]]] = {}
        self.available = True
        self.fetch_count = 0

    def _check_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError("In-memory store is offline")

    def _documents(self, key: DayKey) -> list[Document]:
        return [Document(id=doc_id, data=data) for doc_id, data in self._days.get(key, {}).items()]

    def _notify(self, key: DayKey) -> None:
        documents = self._documents(key)
        for on_documents, on_error in list(self._subscribers.get(key, [])):
            deliver(documents, on_documents, on_error)

    def put(self, device: str, date: str, document_id: str, data: dict[str, Any]) -> None:
        """Create or replace a document and notify the day's subscribers."""
        if device not in self._devices:
            self._devices.append(device)
        self._days.setdefault((device, date), {})[document_id] = data
        self._notify((device, date))

    def delete(self, device: str, date: str, document_id: str) -> None:
        """Remove a document and notify the day's subscribers."""
        self._days.get((device, date), {}).pop(document_id, None)
        self._notify((device, date))

    def subscriber_count(self, device: str, date: str) -> int:
        return len(self._subscribers.get((device, date), []))

    async def list_devices(self) -> list[str]:
        self._check_available()
        return list(self._devices)

    async def fetch_day(self, device: str, date: str) -> list[Document]:
        self._check_available()
        self.fetch_count += 1
        return self._documents((device, date))

    async def subscribe_day(
        self,
        device: str,
        date: str,
        on_documents: DocumentsCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        self._check_available()
        key = (device, date)
        entry = (on_documents, on_error)
        self._subscribers.setdefault(key, []).append(entry)

        def detach() -> None:
            listeners = self._subscribers.get(key, [])
            listeners[:] = [e for e in listeners if e is not entry]

        deliver(self._documents(key), on_documents, on_error)
        return CallbackSubscription(detach)
