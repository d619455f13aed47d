"""Tests for the in-memory, directory and polling store adapters."""

import asyncio
import json

import pytest

from tests.factories import T0, device_doc
from usage_lens.core.config import Config, StoreBackend, StoreConfig
from usage_lens.store import create_store
from usage_lens.store.base import Document, StoreUnavailableError
from usage_lens.store.directory import DirectoryDocumentStore
from usage_lens.store.firestore import FirestoreDocumentStore
from usage_lens.store.polling import PollingSubscription, fingerprint


class TestInMemoryStore:
    async def test_subscribe_delivers_now_and_on_change(self, store):
        deliveries = []
        subscription = await store.subscribe_day("d1", "2024-05-20", deliveries.append)

        store.put("d1", "2024-05-20", "device_1", device_doc(T0))
        store.delete("d1", "2024-05-20", "device_1")
        await subscription.close()
        store.put("d1", "2024-05-20", "device_2", device_doc(T0))

        assert [len(d) for d in deliveries] == [0, 1, 0]
        assert subscription.is_closed

    async def test_subscriber_failure_goes_to_on_error(self, store):
        errors = []

        def explode(documents):
            raise ValueError("bad subscriber")

        await store.subscribe_day("d1", "2024-05-20", explode, errors.append)

        assert isinstance(errors[0], ValueError)

    async def test_put_registers_device(self, store):
        store.put("d9", "2024-05-20", "device_1", device_doc(T0))

        assert await store.list_devices() == ["d9"]

    async def test_offline(self, store):
        store.available = False

        with pytest.raises(StoreUnavailableError):
            await store.fetch_day("d1", "2024-05-20")


class TestDirectoryStore:
    def write(self, root, device, date, doc_id, data):
        day = root / device / date
        day.mkdir(parents=True, exist_ok=True)
        (day / f"{doc_id}.json").write_text(json.dumps(data))

    async def test_fetch_day(self, tmp_path):
        self.write(tmp_path, "d1", "2024-05-20", "device_1", device_doc(T0))
        self.write(tmp_path, "d1", "2024-05-20", "events_1", {"events": []})
        self.write(tmp_path, "d1", "2024-05-20", "odd", [1, 2, 3])
        store = DirectoryDocumentStore(tmp_path)

        documents = await store.fetch_day("d1", "2024-05-20")

        assert [d.id for d in documents] == ["device_1", "events_1"]
        assert documents[0].data["timestamp"] == T0

    async def test_list_devices(self, tmp_path):
        self.write(tmp_path, "phone_b", "2024-05-20", "device_1", device_doc(T0))
        self.write(tmp_path, "phone_a", "2024-05-20", "device_1", device_doc(T0))

        assert await DirectoryDocumentStore(tmp_path).list_devices() == ["phone_a", "phone_b"]

    async def test_missing_day_is_empty(self, tmp_path):
        assert await DirectoryDocumentStore(tmp_path).fetch_day("d1", "2024-05-20") == []

    async def test_missing_root(self, tmp_path):
        store = DirectoryDocumentStore(tmp_path / "nope")

        with pytest.raises(StoreUnavailableError):
            await store.list_devices()

    async def test_corrupt_file(self, tmp_path):
        day = tmp_path / "d1" / "2024-05-20"
        day.mkdir(parents=True)
        (day / "device_1.json").write_text("{oops")

        with pytest.raises(StoreUnavailableError):
            await DirectoryDocumentStore(tmp_path).fetch_day("d1", "2024-05-20")

    async def test_subscription_picks_up_new_files(self, tmp_path):
        self.write(tmp_path, "d1", "2024-05-20", "device_1", device_doc(T0))
        store = DirectoryDocumentStore(tmp_path, poll_interval=0.01)
        deliveries = []

        subscription = await store.subscribe_day("d1", "2024-05-20", deliveries.append)
        try:
            self.write(tmp_path, "d1", "2024-05-20", "device_2", device_doc(T0 + 1))
            for _ in range(100):
                if len(deliveries) >= 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            await subscription.close()

        assert [len(d) for d in deliveries[:2]] == [1, 2]


class TestPolling:
    def test_fingerprint_ignores_order(self):
        a = Document("a", {"x": 1})
        b = Document("b", {"y": 2})

        assert fingerprint([a, b]) == fingerprint([b, a])
        assert fingerprint([a]) != fingerprint([a, b])

    async def test_unchanged_bag_is_not_redelivered(self):
        documents = [Document("a", {"x": 1})]

        async def fetch():
            return documents

        deliveries = []
        subscription = PollingSubscription(fetch, deliveries.append, interval=60)
        await subscription.start()
        try:
            assert await subscription.poll_once() is False
            documents.append(Document("b", {}))
            assert await subscription.poll_once() is True
        finally:
            await subscription.close()

        assert len(deliveries) == 2
        assert not subscription.is_running

    async def test_failure_reports_and_redelivers(self):
        calls = {"n": 0}

        async def fetch():
            calls["n"] += 1
            if calls["n"] == 2:
                raise StoreUnavailableError("offline")
            return []

        deliveries, errors = [], []
        subscription = PollingSubscription(fetch, deliveries.append, errors.append, interval=60)
        await subscription.start()
        try:
            await subscription.poll_once()
            await subscription.poll_once()
        finally:
            await subscription.close()

        assert len(errors) == 1
        # Same empty bag delivered again after recovering
        assert len(deliveries) == 2


class TestCreateStore:
    def test_directory_backend(self, tmp_path):
        config = Config(store=StoreConfig(backend=StoreBackend.DIRECTORY, directory=tmp_path))

        assert isinstance(create_store(config), DirectoryDocumentStore)

    def test_directory_backend_needs_path(self):
        config = Config(store=StoreConfig(backend=StoreBackend.DIRECTORY))

        with pytest.raises(ValueError):
            create_store(config)

    def test_firestore_backend(self):
        config = Config(store=StoreConfig(project_id="demo"))

        assert isinstance(create_store(config), FirestoreDocumentStore)

    def test_firestore_needs_project(self):
        with pytest.raises(ValueError):
            create_store(Config(store=StoreConfig(project_id="")))
