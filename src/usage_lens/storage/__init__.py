"""Local persisted state."""

from usage_lens.storage.local_state import (
    DeviceRegistry,
    KeyValueStore,
    MemoryKeyValueStore,
    SqliteKeyValueStore,
)

__all__ = ["DeviceRegistry", "KeyValueStore", "MemoryKeyValueStore", "SqliteKeyValueStore"]
