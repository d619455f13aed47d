"""Document store over a local JSON export.

Layout: ``root/{device}/{date}/{document_id}.json``, one JSON object per file.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from usage_lens.store.base import (
    Document,
    DocumentsCallback,
    DocumentStore,
    ErrorCallback,
    StoreUnavailableError,
    Subscription,
)
from usage_lens.store.polling import PollingSubscription

logger = logging.getLogger(__name__)


class DirectoryDocumentStore(DocumentStore):
    """Read day bags from an exported directory tree."""

    def __init__(self, root: Path, poll_interval: float = 15.0):
        self.root = Path(root)
        self.poll_interval = poll_interval

    async def list_devices(self) -> list[str]:
        if not self.root.is_dir():
            raise StoreUnavailableError(f"Export directory not found: {self.root}")
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())

    async def fetch_day(self, device: str, date: str) -> list[Document]:
        if not self.root.is_dir():
            raise StoreUnavailableError(f"Export directory not found: {self.root}")
        return await asyncio.to_thread(self._read_day, self.root / device / date)

    def _read_day(self, day_dir: Path) -> list[Document]:
        if not day_dir.is_dir():
            return []

        documents = []
        for path in sorted(day_dir.glob("*.json")):
            try:
                with open(path) as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise StoreUnavailableError(f"Cannot read {path}: {e}") from e

            if not isinstance(data, dict):
                logger.warning(f"Ignoring {path}: top level is not an object")
                continue
            documents.append(Document(id=path.stem, data=data))

        logger.debug(f"Read {len(documents)} documents from {day_dir}")
        return documents

    async def subscribe_day(
        self,
        device: str,
        date: str,
        on_documents: DocumentsCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        subscription = PollingSubscription(
            lambda: self.fetch_day(device, date),
            on_documents,
            on_error,
            interval=self.poll_interval,
            name=f"{device}/{date}",
        )
        await subscription.start()
        return subscription
