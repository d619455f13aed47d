"""API routes for device and day views."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from usage_lens.core.controller import now_ms
from usage_lens.pipeline.day import DayAnalyzer, DayBag, parse_day
from usage_lens.pipeline.formatting import sanitize_device_id
from usage_lens.storage.local_state import DeviceRegistry
from usage_lens.store.base import DocumentStore, StoreUnavailableError
from usage_lens.store.documents import DocumentParseError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    store_connected: bool
    device_count: int


class DevicesResponse(BaseModel):
    """Known devices response."""
    devices: list[str]
    selected: str | None
    error: str | None = None


class AddDeviceRequest(BaseModel):
    """Device id typed by the user."""
    device_id: str


def get_store(request: Request) -> DocumentStore:
    store = request.app.state.store
    if store is None:
        raise HTTPException(status_code=503, detail="Document store not initialized")
    return store


def get_registry(request: Request) -> DeviceRegistry:
    registry = request.app.state.registry
    if registry is None:
        raise HTTPException(status_code=503, detail="Local state not initialized")
    return registry


async def load_bag(request: Request, device: str, date: str) -> DayBag:
    """Fetch and parse one day, mapping failures to HTTP errors."""
    try:
        parse_day(date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    analyzer: DayAnalyzer = request.app.state.analyzer
    try:
        documents = await get_store(request).fetch_day(device, date)
    except StoreUnavailableError as e:
        logger.error(f"Error fetching {device}/{date}: {e}")
        raise HTTPException(status_code=503, detail=f"Data Fetch Error: {e}") from e

    try:
        return analyzer.parse(documents)
    except DocumentParseError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """API health check."""
    try:
        devices = await get_store(request).list_devices()
    except (StoreUnavailableError, HTTPException) as e:
        detail = e.detail if isinstance(e, HTTPException) else str(e)
        return HealthResponse(status=f"unhealthy: {detail}", store_connected=False, device_count=0)

    return HealthResponse(status="healthy", store_connected=True, device_count=len(devices))


@router.get("/devices", response_model=DevicesResponse)
async def list_devices(request: Request) -> DevicesResponse:
    """Remote devices merged with the locally remembered ones."""
    registry = get_registry(request)
    devices, error = await registry.load_devices(get_store(request))
    return DevicesResponse(
        devices=devices,
        selected=await registry.selected_device(),
        error=error,
    )


@router.post("/devices", response_model=DevicesResponse)
async def add_device(request: Request, body: AddDeviceRequest) -> DevicesResponse:
    """Remember a typed device id and select it."""
    registry = get_registry(request)
    added = await registry.add(body.device_id)
    if added is None:
        raise HTTPException(status_code=400, detail="Device id is empty")

    return DevicesResponse(
        devices=await registry.cached_devices(),
        selected=await registry.selected_device(),
    )


@router.get("/days/{device}/{date}/dashboard")
async def get_dashboard(
    request: Request,
    device: str,
    date: str,
    q: str = Query("", description="Filter apps by name"),
) -> dict[str, Any]:
    """Screen time, device stats and per-app usage for a day."""
    device = sanitize_device_id(device)
    bag = await load_bag(request, device, date)
    view = request.app.state.analyzer.dashboard(bag, q)
    return {"device": device, "date": date, **view.to_dict()}


@router.get("/days/{device}/{date}/apps/{package}")
async def get_app_detail(
    request: Request, device: str, date: str, package: str
) -> dict[str, Any]:
    """Reconstructed sessions of one app."""
    device = sanitize_device_id(device)
    bag = await load_bag(request, device, date)
    view = request.app.state.analyzer.app_detail(bag, package, parse_day(date), now_ms())
    return {"device": device, "date": date, **view.to_dict()}


@router.get("/days/{device}/{date}/activity")
async def get_activity(request: Request, device: str, date: str) -> dict[str, Any]:
    """Activity sessions of a day, most recent first."""
    device = sanitize_device_id(device)
    bag = await load_bag(request, device, date)
    timeline = request.app.state.analyzer.activity(bag)
    return {"device": device, "date": date, **timeline.to_dict()}
