"""FastAPI application exposing the tracker's command surface over HTTP."""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from .config import TrackerSettings
from .errors import PersistenceFailure
from .models import TimeEntry, TrackerStats
from .paths import get_store_path
from .serialization import entry_to_record
from .sync_queue import FlushOutcome, FlushResult
from .tracker import FocusTracker, build_tracker

logger = logging.getLogger(__name__)

_MILLISECOND = timedelta(milliseconds=1)


class StartRequest(BaseModel):
    period_ms: Optional[float] = Field(default=None, gt=0)

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    tracker: Optional[FocusTracker] = None,
    store_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    autostart: bool = False,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_settings = settings or (tracker.settings if tracker else TrackerSettings())
    if tracker is None:
        tracker = build_tracker(resolved_settings, Path(store_path or get_store_path()))

    app = FastAPI(title="Focus Tracker", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.tracker = tracker

    @app.on_event("startup")
    async def _startup() -> None:
        if autostart:
            tracker.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        # The final flush may wait on the network.
        await run_in_threadpool(tracker.stop)

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        current: FocusTracker = request.app.state.tracker
        try:
            last_saved = current.queue.store.last_saved()
        except PersistenceFailure:
            last_saved = None
        return {
            "running": current.running,
            "syncing": current.queue.syncing,
            "sampler": current.sampler.name,
            "store_path": str(current.queue.store.path),
            "last_saved": last_saved,
            "sample_ms": resolved_settings.sample_interval // _MILLISECOND,
            "debounce_ms": resolved_settings.debounce_threshold // _MILLISECOND,
            "flush_seconds": resolved_settings.flush_interval.total_seconds(),
        }

    @app.get("/api/current")
    def current_entry(request: Request) -> Optional[Dict[str, Any]]:
        entry = request.app.state.tracker.get_current_entry()
        return _entry_payload(request, entry) if entry else None

    @app.get("/api/entries")
    def entries(request: Request) -> list[Dict[str, Any]]:
        return [_entry_payload(request, entry) for entry in request.app.state.tracker.get_entries()]

    @app.get("/api/stats")
    def stats(request: Request) -> Dict[str, Any]:
        return _stats_payload(request.app.state.tracker.get_stats())

    @app.get("/api/stored")
    def stored(request: Request) -> Dict[str, Any]:
        try:
            return request.app.state.tracker.queue.store.snapshot()
        except PersistenceFailure as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc

    @app.post("/api/start")
    def start(request: Request, payload: Optional[StartRequest] = None) -> Dict[str, Any]:
        try:
            request.app.state.tracker.start(payload.period_ms if payload else None)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"success": True, "running": request.app.state.tracker.running}

    @app.post("/api/stop")
    def stop(request: Request) -> Dict[str, Any]:
        result = request.app.state.tracker.stop()
        return {"success": True, "flush": _flush_payload(result) if result else None}

    @app.post("/api/save")
    def save(request: Request) -> Dict[str, Any]:
        return _flush_payload(request.app.state.tracker.save_now())

    @app.post("/api/sync")
    def sync(request: Request) -> Dict[str, Any]:
        return _flush_payload(request.app.state.tracker.sync_now())

    @app.post("/api/clear")
    def clear(request: Request) -> Dict[str, Any]:
        try:
            request.app.state.tracker.clear_all()
        except PersistenceFailure as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return {"success": True}

    return app


def _entry_payload(request: Request, entry: TimeEntry) -> Dict[str, Any]:
    return entry_to_record(entry, request.app.state.tracker.queue.store.tz)


def _stats_payload(stats: TrackerStats) -> Dict[str, Any]:
    return {
        "totalEntries": stats.total_entries,
        "totalDurationSeconds": stats.total_duration_seconds,
        "perAppDurationSeconds": stats.per_app_duration_seconds,
    }


def _flush_payload(result: FlushResult) -> Dict[str, Any]:
    return {
        "success": result.error is None and result.outcome is not FlushOutcome.SKIPPED,
        "outcome": result.outcome.value,
        "persisted": result.persisted,
        "uploaded": result.uploaded,
        "error": result.error,
    }
