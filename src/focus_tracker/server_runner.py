"""Helpers to launch the local HTTP control API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import uvicorn

from .config import TrackerSettings
from .paths import get_store_path
from .webapp import create_app


def run_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    store_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    autostart: bool = True,
    log_level: str = "info",
) -> None:
    """Start the FastAPI control API; the tracker stops when the server does."""
    app = create_app(
        store_path=store_path or get_store_path(),
        settings=settings or TrackerSettings(),
        autostart=autostart,
    )

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)
