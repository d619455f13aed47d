"""Local persisted state: known device ids and the last selected device."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Protocol

import aiosqlite

from usage_lens.pipeline.formatting import sanitize_device_id
from usage_lens.store.base import DocumentStore, StoreUnavailableError

logger = logging.getLogger(__name__)

DEVICE_IDS_KEY = "device_ids"
SELECTED_DEVICE_KEY = "selected_device"

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""


class KeyValueStore(Protocol):
    """String key-value persistence."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    """Key-value store that forgets everything on exit."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.values[key] = value


class SqliteKeyValueStore:
    """Key-value store in a small SQLite database with WAL mode."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the database and create the table."""
        if self._connection is not None:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self.db_path, isolation_level=None)
        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA busy_timeout=5000")
        await self._connection.executescript(SCHEMA)

        logger.debug(f"Local state connected: {self.db_path}")

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def get(self, key: str) -> str | None:
        if self._connection is None:
            raise RuntimeError("Local state not connected")

        async with self._connection.execute("SELECT value FROM kv WHERE key = ?", (key,)) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        if self._connection is None:
            raise RuntimeError("Local state not connected")

        async with self._lock:
            await self._connection.execute(
                """INSERT INTO kv (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                   updated_at = CURRENT_TIMESTAMP""",
                (key, value),
            )


def merge_device_ids(*sources: list[str]) -> list[str]:
    """Union of device id lists, de-duplicated, first occurrence order."""
    return list(dict.fromkeys(device for source in sources for device in source if device))


class DeviceRegistry:
    """Remembers device ids and the user's selection across runs."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    async def cached_devices(self) -> list[str]:
        raw = await self.kv.get(DEVICE_IDS_KEY)
        if not raw:
            return []
        try:
            ids = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Cached device list is corrupt, ignoring it")
            return []
        return [str(i) for i in ids] if isinstance(ids, list) else []

    async def _save_devices(self, devices: list[str]) -> None:
        await self.kv.set(DEVICE_IDS_KEY, json.dumps(devices))

    async def selected_device(self) -> str | None:
        return await self.kv.get(SELECTED_DEVICE_KEY) or None

    async def select(self, device: str) -> str:
        """Select a device id as typed or as displayed. Returns the stored id."""
        device = sanitize_device_id(device)
        await self.kv.set(SELECTED_DEVICE_KEY, device)
        return device

    async def add(self, raw_id: str) -> str | None:
        """Add a typed device id, remember it and select it.

        Returns:
            The sanitised id, or None if nothing was typed.
        """
        device = sanitize_device_id(raw_id)
        if not device:
            return None

        devices = merge_device_ids(await self.cached_devices(), [device])
        await self._save_devices(devices)
        await self.select(device)
        logger.info(f"Added device {device}")
        return device

    async def merge_with_remote(self, remote: list[str]) -> list[str]:
        """Union of remote and cached ids, remote order first."""
        return merge_device_ids(remote, await self.cached_devices())

    async def load_devices(self, store: DocumentStore) -> tuple[list[str], str | None]:
        """Enumerate devices, falling back to the cache when the store is down.

        Selects the first known device when nothing is selected yet.

        Returns:
            The device list and a non-fatal error message (None on success).
        """
        error: str | None = None
        try:
            devices = await self.merge_with_remote(await store.list_devices())
        except StoreUnavailableError as e:
            logger.error(f"Error fetching devices: {e}")
            devices = await self.cached_devices()
            error = f"Device Fetch Error: {e}"

        if devices and await self.selected_device() is None:
            await self.select(devices[0])

        return devices, error
