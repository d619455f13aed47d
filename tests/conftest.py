"""Shared fixtures."""

from __future__ import annotations

import pytest

from tests.factories import MINUTE, T0, app_entry, device_doc, event, events_doc, usage_doc
from usage_lens.storage.local_state import MemoryKeyValueStore
from usage_lens.store.memory import InMemoryDocumentStore


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def sample_day(store: InMemoryDocumentStore) -> InMemoryDocumentStore:
    """Device d1 on 2024-05-20 with usage, device stats and events."""
    store.put(
        "d1", "2024-05-20", "app_usage_0800",
        usage_doc(T0, [app_entry("com.whatsapp", 0, "WhatsApp")]),
    )
    store.put(
        "d1", "2024-05-20", "app_usage_0810",
        usage_doc(T0 + 600_000, [app_entry("com.whatsapp", 500_000, "WhatsApp", launches=3)]),
    )
    store.put("d1", "2024-05-20", "device_0810", device_doc(T0 + 600_000, battery=0.82, unlocks=4))
    store.put(
        "d1", "2024-05-20", "events_0800",
        events_doc(
            event("com.whatsapp", "APP_OPENED", T0, "WhatsApp"),
            event("com.whatsapp", "APP_CLOSED", T0 + 5 * MINUTE, "WhatsApp"),
        ),
    )
    return store
