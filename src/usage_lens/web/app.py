"""FastAPI application serving the dashboard, app and activity views."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from usage_lens import __version__
from usage_lens.core.config import Config, get_config
from usage_lens.pipeline.day import DayAnalyzer
from usage_lens.storage.local_state import (
    DeviceRegistry,
    KeyValueStore,
    SqliteKeyValueStore,
)
from usage_lens.store import DocumentStore, create_store

logger = logging.getLogger(__name__)


def create_app(
    config: Config | None = None,
    store: DocumentStore | None = None,
    kv: KeyValueStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Settings; the global config when omitted.
        store: Document store to serve from; built from config on startup when omitted.
        kv: Local state backend; a SQLite file under the data dir when omitted.
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting Usage Lens API...")

        owned_store = None
        owned_kv = None
        if app.state.store is None:
            owned_store = create_store(config)
            app.state.store = owned_store
        if app.state.registry is None:
            owned_kv = SqliteKeyValueStore(config.db_path)
            await owned_kv.connect()
            app.state.registry = DeviceRegistry(owned_kv)

        yield

        if owned_store is not None:
            await owned_store.close()
            app.state.store = None
        if owned_kv is not None:
            await owned_kv.close()
            app.state.registry = None
        logger.info("API shutdown complete")

    app = FastAPI(
        title="Usage Lens",
        description="Phone usage analytics API",
        version=__version__,
        lifespan=lifespan,
    )

    # Browser dashboards are served from other origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.store = store
    app.state.registry = DeviceRegistry(kv) if kv is not None else None
    app.state.analyzer = DayAnalyzer(config.pipeline)

    from usage_lens.web.routes import api

    app.include_router(api.router, prefix="/api")

    return app


def run_server(host: str = "127.0.0.1", port: int = 8080) -> None:
    """Run the web server."""
    import uvicorn

    logger.info(f"Starting API at http://{host}:{port}")

    uvicorn.run(
        "usage_lens.web.app:create_app",
        host=host,
        port=port,
        factory=True,
        log_level="info",
    )
