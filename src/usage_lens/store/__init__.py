"""Document store adapters and the document parse boundary."""

from __future__ import annotations

from typing import TYPE_CHECKING

from usage_lens.store.base import Document, DocumentStore, StoreUnavailableError, Subscription
from usage_lens.store.documents import DocumentParseError

if TYPE_CHECKING:
    from usage_lens.core.config import Config


def create_store(config: Config) -> DocumentStore:
    """Build the document store selected by ``config.store.backend``."""
    from usage_lens.core.config import StoreBackend

    if config.store.backend is StoreBackend.DIRECTORY:
        from usage_lens.store.directory import DirectoryDocumentStore

        if config.store.directory is None:
            raise ValueError("store.directory must be set for the directory backend")
        return DirectoryDocumentStore(
            config.store.directory,
            poll_interval=config.store.poll_interval_seconds,
        )

    from usage_lens.store.firestore import FirestoreDocumentStore

    return FirestoreDocumentStore(config.store)


__all__ = [
    "Document",
    "DocumentStore",
    "DocumentParseError",
    "StoreUnavailableError",
    "Subscription",
    "create_store",
]
