"""Firestore REST client for the monitoring collection.

Documents live at ``{collection}/{device}/{date}/{document_id}``. The REST API
has no push channel, so live subscriptions poll.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import aiohttp

from usage_lens.core.config import StoreConfig
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


def decode_value(value: dict[str, Any]) -> Any:
    """Decode a Firestore typed value into plain Python."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    for key in ("stringValue", "timestampValue", "referenceValue", "bytesValue"):
        if key in value:
            return value[key]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])

    logger.warning(f"Unsupported Firestore value: {list(value)}")
    return None


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Decode a Firestore ``fields`` map."""
    return {name: decode_value(v) for name, v in fields.items()}


def document_id(name: str) -> str:
    """Last path segment of a Firestore document resource name."""
    return name.rstrip("/").rsplit("/", 1)[-1]


class FirestoreDocumentStore(DocumentStore):
    """Read-only Firestore access over the v1 REST API."""

    def __init__(self, config: StoreConfig, session: aiohttp.ClientSession | None = None):
        if not config.project_id:
            raise ValueError("store.project_id is required for the Firestore backend")

        self.config = config
        self.collection = config.collection
        self.base_url = (
            f"{config.endpoint.rstrip('/')}/v1/projects/{config.project_id}"
            f"/databases/{config.database}/documents"
        )
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _list(self, path: str, extra: dict[str, str] | None = None) -> list[dict[str, Any]]:
        """List every document under a collection path, following pages."""
        session = await self._get_session()
        url = f"{self.base_url}/{path}"
        params: dict[str, str] = {"pageSize": str(self.config.page_size), **(extra or {})}
        if self.config.api_key:
            params["key"] = self.config.api_key

        documents: list[dict[str, Any]] = []
        try:
            while True:
                async with session.get(url, params=params) as resp:
                    if resp.status != 200:
                        body = await resp.text()
                        raise StoreUnavailableError(
                            f"Firestore returned {resp.status} for {path}: {body[:200]}"
                        )
                    payload = await resp.json()

                documents.extend(payload.get("documents", []))
                token = payload.get("nextPageToken")
                if not token:
                    break
                params["pageToken"] = token
        except aiohttp.ClientError as e:
            raise StoreUnavailableError(f"Network error reading {path}: {e}") from e
        except asyncio.TimeoutError as e:
            raise StoreUnavailableError(f"Timed out reading {path}") from e

        return documents

    async def list_devices(self) -> list[str]:
        # Device documents usually only exist as parents of day collections
        raw = await self._list(quote(self.collection), {"showMissing": "true"})
        devices = [document_id(d["name"]) for d in raw if "name" in d]
        logger.info(f"Found {len(devices)} devices in {self.collection}")
        return devices

    async def fetch_day(self, device: str, date: str) -> list[Document]:
        path = "/".join(quote(part, safe="") for part in (self.collection, device, date))
        raw = await self._list(path)
        documents = [
            Document(id=document_id(d["name"]), data=decode_fields(d.get("fields", {})))
            for d in raw
            if "name" in d
        ]
        logger.debug(f"Fetched {len(documents)} documents for {device}/{date}")
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
            interval=self.config.poll_interval_seconds,
            name=f"{device}/{date}",
        )
        await subscription.start()
        return subscription
