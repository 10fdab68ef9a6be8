"""Command-line interface for the focus tracker."""

from __future__ import annotations

import json
import logging
import time
from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer

from .config import TrackerSettings
from .paths import get_log_path, get_store_path
from .serialization import resolve_timezone

app = typer.Typer(help="Focus tracker: segments window focus into time entries.")

logger = logging.getLogger(__name__)

StorePath = typer.Option(
    None,
    "--store",
    path_type=Path,
    envvar="FOCUS_TRACKER_STORE",
    help="Location of the local entry store (SQLite).",
)
TimezoneName = typer.Option(
    None,
    "--timezone",
    envvar="FOCUS_TRACKER_TIMEZONE",
    help="IANA zone used for stored timestamps. Defaults to local time.",
)
CollectorUrl = typer.Option(
    None,
    "--collector-url",
    envvar="FOCUS_TRACKER_COLLECTOR_URL",
    help="Endpoint that receives uploaded entries. Without it entries stay local.",
)


@app.callback(no_args_is_help=True)
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", path_type=Path, help="Also write logs to this file."
    ),
    log_to_file: bool = typer.Option(
        False, "--log-to-file", help="Also write logs to the per-user log file."
    ),
) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_to_file and log_file is None:
        log_file = get_log_path()
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s %(message)s",
        handlers=handlers,
    )
    logging.getLogger("urllib3.connectionpool").setLevel(logging.INFO)


def _settings(
    interval_ms: float,
    debounce_ms: float,
    flush_seconds: float,
    collector_url: Optional[str],
    reachability_url: Optional[str],
    timezone: Optional[str],
) -> TrackerSettings:
    try:
        return TrackerSettings.from_options(
            interval_ms=interval_ms,
            debounce_ms=debounce_ms,
            flush_seconds=flush_seconds,
            collector_url=collector_url,
            reachability_url=reachability_url,
            timezone=timezone,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _open_store(store_path: Optional[Path], timezone: Optional[str]):
    from .store import DurableStore

    return DurableStore(store_path or get_store_path(), tz=resolve_timezone(timezone))


@app.command()
def track(
    store_path: Optional[Path] = StorePath,
    interval_ms: float = typer.Option(
        200.0, "--interval-ms", min=10.0, help="Sampling period in milliseconds."
    ),
    debounce_ms: float = typer.Option(
        2000.0,
        "--debounce-ms",
        min=100.0,
        help="Focus spans this short or shorter are dropped as flicker.",
    ),
    flush_seconds: float = typer.Option(
        30.0, "--flush-interval", min=1.0, help="Seconds between save/sync cycles."
    ),
    collector_url: Optional[str] = CollectorUrl,
    reachability_url: Optional[str] = typer.Option(
        None,
        "--reachability-url",
        envvar="FOCUS_TRACKER_REACHABILITY_URL",
        help="URL probed before each upload.",
    ),
    timezone: Optional[str] = TimezoneName,
) -> None:
    """Run the tracker in the foreground until interrupted."""
    from .tracker import build_tracker

    settings = _settings(
        interval_ms, debounce_ms, flush_seconds, collector_url, reachability_url, timezone
    )
    tracker = build_tracker(settings, store_path or get_store_path())
    tracker.start()
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        logger.info("Tracker interrupted; sealing and saving remaining entries.")
    finally:
        tracker.stop()


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(8765, "--port", min=1, max=65535, help="TCP port for the API."),
    store_path: Optional[Path] = StorePath,
    interval_ms: float = typer.Option(
        200.0, "--interval-ms", min=10.0, help="Sampling period in milliseconds."
    ),
    debounce_ms: float = typer.Option(
        2000.0, "--debounce-ms", min=100.0, help="Minimum span kept as real activity."
    ),
    flush_seconds: float = typer.Option(
        30.0, "--flush-interval", min=1.0, help="Seconds between save/sync cycles."
    ),
    collector_url: Optional[str] = CollectorUrl,
    timezone: Optional[str] = TimezoneName,
    autostart: bool = typer.Option(
        True, "--autostart/--no-autostart", help="Start tracking as soon as the API is up."
    ),
) -> None:
    """Serve the HTTP control API with the tracker running in the background."""
    from .server_runner import run_server

    settings = _settings(interval_ms, debounce_ms, flush_seconds, collector_url, None, timezone)
    run_server(
        host=host,
        port=port,
        store_path=store_path or get_store_path(),
        settings=settings,
        autostart=autostart,
    )


@app.command()
def probe() -> None:
    """Print the selected focus sampler and what it currently sees."""
    from .sampler import select_sampler

    sampler = select_sampler(timeout=timedelta(seconds=2))
    typer.echo(f"Sampler: {sampler.name}")
    try:
        sample = sampler.probe()
    except Exception as exc:
        typer.echo(f"Probe failed: {exc}")
        raise typer.Exit(code=1)
    if sample is None:
        typer.echo("No focused window.")
        return
    typer.echo(f"Title:   {sample.title or '-'}")
    typer.echo(f"Process: {sample.process_name or '-'} (pid {sample.pid or '-'})")


@app.command()
def stats(
    store_path: Optional[Path] = StorePath,
    timezone: Optional[str] = TimezoneName,
) -> None:
    """Print totals for entries waiting to be uploaded."""
    from .reporting import SummaryPrinter, summarize_entries

    store = _open_store(store_path, timezone)
    SummaryPrinter().print_stats(summarize_entries(store.read_all()))


@app.command()
def stored(
    store_path: Optional[Path] = StorePath,
    timezone: Optional[str] = TimezoneName,
) -> None:
    """List entries waiting to be uploaded."""
    from .reporting import SummaryPrinter

    store = _open_store(store_path, timezone)
    SummaryPrinter().print_entries(store.read_all())


@app.command()
def export(
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", path_type=Path, help="Write JSON here instead of stdout."
    ),
    store_path: Optional[Path] = StorePath,
    timezone: Optional[str] = TimezoneName,
) -> None:
    """Dump the local store as JSON."""
    snapshot = _open_store(store_path, timezone).snapshot()
    text = json.dumps(snapshot, indent=2, ensure_ascii=False)
    if output:
        output.write_text(text + "\n", encoding="utf-8")
        typer.echo(f"Wrote {len(snapshot['entries'])} entries to {output}")
    else:
        typer.echo(text)


@app.command()
def sync(
    store_path: Optional[Path] = StorePath,
    collector_url: Optional[str] = CollectorUrl,
    timezone: Optional[str] = TimezoneName,
) -> None:
    """Run one sync cycle against the collector."""
    from .sync_queue import FlushOutcome, SyncQueue
    from .transport import build_transport

    settings = _settings(200.0, 2000.0, 30.0, collector_url, None, timezone)
    store = _open_store(store_path, timezone)
    transport = build_transport(
        settings.collector_url,
        device_id=settings.device_id,
        reachability_url=settings.reachability_url,
        upload_timeout=settings.upload_timeout,
        tz=store.tz,
    )
    queue = SyncQueue(store, transport, reachability_timeout=settings.reachability_timeout)
    result = queue.flush(wait=True)
    typer.echo(f"Sync {result.outcome.value}: {result.uploaded} entries uploaded")
    if result.outcome in (FlushOutcome.UPLOAD_FAILED, FlushOutcome.PERSISTENCE_FAILED):
        raise typer.Exit(code=1)


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    store_path: Optional[Path] = StorePath,
    timezone: Optional[str] = TimezoneName,
) -> None:
    """Discard every entry in the local store."""
    store = _open_store(store_path, timezone)
    count = store.count()
    if not yes:
        typer.confirm(f"Discard {count} stored entries?", abort=True)
    store.clear()
    typer.echo(f"Cleared {count} entries.")
