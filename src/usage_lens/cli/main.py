"""CLI commands for Usage Lens using Typer."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator
from zoneinfo import ZoneInfo

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from usage_lens import __version__
from usage_lens.core.config import Config, get_config
from usage_lens.core.controller import DayController, DayState, now_ms
from usage_lens.pipeline.day import (
    ActivityTimeline,
    AppDetailView,
    DashboardView,
    DayAnalyzer,
    parse_day,
    today_key,
)
from usage_lens.pipeline.formatting import (
    format_app_name,
    format_clock,
    format_duration,
    format_time_ago,
    sanitize_device_id,
)
from usage_lens.storage.local_state import DeviceRegistry, SqliteKeyValueStore
from usage_lens.store import DocumentStore, create_store

app = typer.Typer(
    name="usage-lens",
    help="Phone usage analytics over synced usage snapshots.",
    add_completion=False,
)

console = Console()


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_level: str, log_file: Path | None = None) -> None:
    """Configure logging for the application."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    # Reduce noise from external libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


@asynccontextmanager
async def open_session(config: Config) -> AsyncIterator[tuple[DocumentStore, DeviceRegistry]]:
    """Open the document store and local state for one command."""
    try:
        store = create_store(config)
    except ValueError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)

    kv = SqliteKeyValueStore(config.db_path)
    await kv.connect()
    try:
        yield store, DeviceRegistry(kv)
    finally:
        await store.close()
        await kv.close()


async def resolve_device(
    device: str | None, store: DocumentStore, registry: DeviceRegistry
) -> str:
    """Use the given device, else the remembered one, else the first known."""
    device = sanitize_device_id(device or "")
    if device:
        return device

    selected = await registry.selected_device()
    if selected:
        return selected

    devices, error = await registry.load_devices(store)
    if error:
        console.print(f"[yellow]{error}[/yellow]")
    if not devices:
        console.print("[red]No devices found. Add one with 'usage-lens add-device ID'.[/red]")
        raise typer.Exit(1)
    return devices[0]


def resolve_date(date: str | None, config: Config) -> str:
    """Validate a ``YYYY-MM-DD`` date, defaulting to today."""
    if date is None:
        return today_key(ZoneInfo(config.pipeline.timezone))
    try:
        parse_day(date)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    return date


async def load_day(config: Config, device: str | None, date: str) -> tuple[DayController, DayState]:
    """Fetch one day once and return the controller and its state."""
    async with open_session(config) as (store, registry):
        device = await resolve_device(device, store, registry)
        controller = DayController(store, DayAnalyzer(config.pipeline), live=False)
        state = await controller.select(device, date)
        return controller, state


def check_state(state: DayState) -> None:
    """Exit with the state's error message, if any."""
    if state.error:
        console.print(f"[red]Error: {state.error}[/red]")
        raise typer.Exit(1)


def render_dashboard(state: DayState, view: DashboardView | None, config: Config) -> Group:
    """Build the dashboard display."""
    tz = ZoneInfo(config.pipeline.timezone)
    title = f"{state.device} / {state.date}"

    if view is None or view.usage_stats is None and view.device_stats is None:
        return Group(Panel("[dim]No data for this day.[/dim]", title=title, border_style="yellow"))

    stats = view.usage_stats
    updated = format_time_ago(stats.timestamp, now_ms(), tz) if stats else "Never"

    summary = Table(show_header=False, box=None, padding=(0, 2))
    summary.add_column("Key", style="cyan")
    summary.add_column("Value")
    summary.add_row("Total Screen Time", f"[bold]{format_duration(view.total_screen_time_ms)}[/bold]")
    summary.add_row("Updated", updated)
    if stats:
        summary.add_row(
            "Window",
            f"{format_clock(stats.baseline_timestamp, tz)} -> {format_clock(stats.timestamp, tz)}",
        )

    device = view.device_stats
    summary.add_row("Unlocks", str(device.total_unlocks if device else 0))
    if view.battery_percent is not None:
        charging = " [green]Charging[/green]" if device and device.is_charging else ""
        summary.add_row("Battery", f"{view.battery_percent}%{charging}")
    if view.unlock_cadence_minutes:
        summary.add_row("Use per Unlock", f"{view.unlock_cadence_minutes} min")

    parts: list = [Panel(summary, title=title, border_style="green")]

    if view.apps:
        table = Table(title="App Usage", show_header=True, header_style="bold cyan")
        table.add_column("App")
        table.add_column("Package", style="dim")
        table.add_column("Time", justify="right")
        table.add_column("Share", justify="right")
        table.add_column("Opens", justify="right")
        table.add_column("Last Used")

        for row in view.apps:
            table.add_row(
                row.display_name,
                row.usage.package_name,
                format_duration(row.usage.usage_time_ms),
                f"{row.share_percent}%",
                str(row.usage.launch_count),
                format_time_ago(row.usage.last_time_used, now_ms(), tz)
                if row.usage.last_time_used
                else "-",
            )
        parts.append(table)
    elif stats is None:
        parts.append("[dim]No app usage recorded yet.[/dim]")

    return Group(*parts)


def render_app_detail(state: DayState, view: AppDetailView, config: Config) -> Group:
    """Build the app session history display."""
    tz = ZoneInfo(config.pipeline.timezone)
    name = format_app_name(view.package_name, view.app_name)

    header = (
        f"[bold]{name}[/bold] ({view.package_name})\n"
        f"Total Time: {format_duration(view.total_duration_ms)}   "
        f"Sessions: {view.session_count}   "
        f"Average: {format_duration(view.avg_session_ms)}"
    )
    parts: list = [Panel(header, title=f"{state.device} / {state.date}", border_style="cyan")]

    if not view.sessions:
        parts.append("[dim]No significant usage detected. Sessions under 1 minute are hidden.[/dim]")
        return Group(*parts)

    table = Table(title="Session History", show_header=True, header_style="bold cyan")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Duration", justify="right")

    for session in view.sessions:
        end = (
            "[green]Active Now[/green]"
            if session.end_time is None
            else format_clock(session.end_time, tz)
        )
        table.add_row(format_clock(session.start_time, tz), end, format_duration(session.duration_ms))
    parts.append(table)
    return Group(*parts)


def render_activity(
    state: DayState, timeline: ActivityTimeline | None, config: Config, expand: bool = False
) -> Group:
    """Build the activity timeline display."""
    tz = ZoneInfo(config.pipeline.timezone)
    sessions = timeline.sessions if timeline else []

    parts: list = [
        Panel(
            f"Total Sessions: [bold]{len(sessions)}[/bold]",
            title=f"{state.device} / {state.date}",
            border_style="magenta",
        )
    ]
    if not sessions:
        parts.append("[dim]No activity sessions for this day.[/dim]")
        return Group(*parts)

    table = Table(title="Activity", show_header=True, header_style="bold cyan")
    table.add_column("Time")
    table.add_column("Duration", justify="right")
    table.add_column("Main App")
    table.add_column("Apps", justify="right")
    table.add_column("Category")

    for session in sessions:
        dominant = session.dominant_app
        table.add_row(
            f"{format_clock(session.start_time, tz)} - {format_clock(session.end_time, tz)}",
            format_duration(session.total_duration),
            format_app_name(dominant.pkg, dominant.name),
            str(session.app_count),
            session.category.value,
        )
    parts.append(table)

    if expand:
        for session in sessions:
            thread = Table(
                title=f"Thread {format_clock(session.start_time, tz)}",
                show_header=True,
                header_style="bold",
            )
            thread.add_column("#", justify="right")
            thread.add_column("Time")
            thread.add_column("Action")
            thread.add_column("App")
            thread.add_column("Until Next", justify="right")
            for segment in session.thread:
                thread.add_row(
                    str(segment.idx),
                    format_clock(segment.timestamp, tz),
                    segment.action.value,
                    format_app_name(segment.pkg, segment.app_name),
                    format_duration(segment.duration_ms) if segment.duration_ms else "-",
                )
            parts.append(thread)

    return Group(*parts)


@app.command()
def devices() -> None:
    """List known devices (remote and locally remembered)."""
    config = get_config()

    async def run() -> tuple[list[str], str | None, str | None]:
        async with open_session(config) as (store, registry):
            found, error = await registry.load_devices(store)
            return found, error, await registry.selected_device()

    found, error, selected = asyncio.run(run())
    if error:
        console.print(f"[yellow]{error}[/yellow]")

    if not found:
        console.print("[yellow]No devices found[/yellow]")
        return

    table = Table(title="Devices", show_header=True, header_style="bold cyan")
    table.add_column("Device")
    table.add_column("Selected")
    for device in found:
        table.add_row(device.replace("_", " "), "[green]*[/green]" if device == selected else "")
    console.print(table)


@app.command(name="add-device")
def add_device(device_id: str = typer.Argument(..., help="Device id as shown on the phone")) -> None:
    """Remember a device id and select it."""
    config = get_config()

    async def run() -> str | None:
        kv = SqliteKeyValueStore(config.db_path)
        await kv.connect()
        try:
            return await DeviceRegistry(kv).add(device_id)
        finally:
            await kv.close()

    added = asyncio.run(run())
    if added is None:
        console.print("[red]Device id is empty[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Added and selected {added}[/green]")


@app.command()
def select(device_id: str = typer.Argument(..., help="Device id to select")) -> None:
    """Select the device used when --device is omitted."""
    config = get_config()

    async def run() -> str:
        kv = SqliteKeyValueStore(config.db_path)
        await kv.connect()
        try:
            return await DeviceRegistry(kv).select(device_id)
        finally:
            await kv.close()

    if not sanitize_device_id(device_id):
        console.print("[red]Device id is empty[/red]")
        raise typer.Exit(1)
    selected = asyncio.run(run())
    console.print(f"[green]Selected {selected}[/green]")


@app.command()
def dashboard(
    date: str = typer.Argument(None, help="Date in YYYY-MM-DD format (default: today)"),
    device: str = typer.Option(None, "--device", "-d", help="Device id"),
    search: str = typer.Option("", "--search", "-s", help="Filter apps by name"),
) -> None:
    """Show screen time and per-app usage for a day."""
    config = get_config()
    date = resolve_date(date, config)

    controller, state = asyncio.run(load_day(config, device, date))
    check_state(state)

    view = controller.analyzer.dashboard(state.bag, search) if state.has_data else None
    console.print(render_dashboard(state, view, config))


@app.command(name="app")
def app_detail(
    package: str = typer.Argument(..., help="Package name, e.g. com.whatsapp"),
    date: str = typer.Argument(None, help="Date in YYYY-MM-DD format (default: today)"),
    device: str = typer.Option(None, "--device", "-d", help="Device id"),
) -> None:
    """Show reconstructed sessions of one app."""
    config = get_config()
    date = resolve_date(date, config)

    controller, state = asyncio.run(load_day(config, device, date))
    check_state(state)

    view = controller.app_detail(package)
    if view is None:
        console.print("[yellow]No data for this day[/yellow]")
        return
    console.print(render_app_detail(state, view, config))


@app.command()
def activity(
    date: str = typer.Argument(None, help="Date in YYYY-MM-DD format (default: today)"),
    device: str = typer.Option(None, "--device", "-d", help="Device id"),
    expand: bool = typer.Option(False, "--expand", "-e", help="Show each session's event thread"),
) -> None:
    """Show multi-app activity sessions for a day."""
    config = get_config()
    date = resolve_date(date, config)

    _, state = asyncio.run(load_day(config, device, date))
    check_state(state)
    console.print(render_activity(state, state.activity, config, expand=expand))


@app.command()
def watch(
    date: str = typer.Argument(None, help="Date in YYYY-MM-DD format (default: today)"),
    device: str = typer.Option(None, "--device", "-d", help="Device id"),
    view: str = typer.Option("dashboard", "--view", "-v", help="dashboard or activity"),
) -> None:
    """Watch a day live, re-rendering whenever the store changes."""
    config = get_config()
    date = resolve_date(date, config)
    if view not in ("dashboard", "activity"):
        console.print("[red]Invalid view. Use 'dashboard' or 'activity'[/red]")
        raise typer.Exit(1)

    def render(state: DayState):
        if state.error:
            return Panel(f"[red]{state.error}[/red]", title="Connection Error", border_style="red")
        if state.loading:
            return "[dim]Loading...[/dim]"
        if view == "activity":
            return render_activity(state, state.activity, config)
        return render_dashboard(state, state.dashboard, config)

    async def run() -> None:
        async with open_session(config) as (store, registry):
            target = await resolve_device(device, store, registry)
            controller = DayController(store, DayAnalyzer(config.pipeline), live=True)

            with Live(console=console, refresh_per_second=4) as live:
                controller.add_listener(lambda state: live.update(render(state)))
                await controller.select(target, date)
                try:
                    while True:
                        await asyncio.sleep(3600)
                finally:
                    await controller.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")


@app.command()
def serve() -> None:
    """Serve the JSON API for dashboard front ends."""
    config = get_config()
    setup_logging(config.log_level, config.log_dir / "server.log")

    from usage_lens.web.app import run_server

    console.print(f"[green]Serving at http://{config.web.host}:{config.web.port}[/green]")
    run_server(config.web.host, config.web.port)


@app.command(name="config-show")
def config_show() -> None:
    """Show current configuration."""
    config = get_config()

    table = Table(title="Usage Lens Configuration", show_header=True, header_style="bold cyan")
    table.add_column("Setting")
    table.add_column("Value")

    table.add_row("[bold]Paths[/bold]", "")
    table.add_row("  Data Directory", str(config.data_dir))
    table.add_row("  Log Directory", str(config.log_dir))
    table.add_row("  Config File", str(config.config_file))
    table.add_row("  Local State", str(config.db_path))

    table.add_row("[bold]Store[/bold]", "")
    table.add_row("  Backend", config.store.backend.value)
    if config.store.directory:
        table.add_row("  Directory", str(config.store.directory))
    table.add_row("  Project", config.store.project_id or "[yellow]Not Set[/yellow]")
    table.add_row("  Collection", config.store.collection)
    table.add_row("  API Key", "***" if config.store.api_key else "[yellow]Not Set[/yellow]")
    table.add_row("  Poll Interval", f"{config.store.poll_interval_seconds}s")

    pipeline = config.pipeline
    table.add_row("[bold]Pipeline[/bold]", "")
    table.add_row("  Usage Grace", format_duration(pipeline.usage_grace_ms))
    table.add_row("  Session Noise Floor", format_duration(pipeline.session_noise_floor_ms))
    table.add_row("  Unclosed Session Cap", format_duration(pipeline.unterminated_session_cap_ms))
    table.add_row("  Activity Gap", format_duration(pipeline.cluster_gap_ms))
    table.add_row("  Activity Noise Floor", format_duration(pipeline.cluster_noise_floor_ms))
    table.add_row("  Unknown Events As", pipeline.unknown_event_action.value)
    table.add_row("  Battery Unit", pipeline.battery_unit.value)
    table.add_row("  Timezone", pipeline.timezone)
    table.add_row("  Strict Documents", str(pipeline.strict_documents))

    table.add_row("[bold]Web API[/bold]", "")
    table.add_row("  URL", f"http://{config.web.host}:{config.web.port}")

    console.print(table)


@app.command()
def version() -> None:
    """Show version."""
    console.print(f"usage-lens {__version__}")


@app.callback()
def main_callback(
    log_level: str = typer.Option(None, "--log-level", help="Override the configured log level"),
) -> None:
    """Usage Lens - phone usage analytics over synced snapshots."""
    config = get_config()
    setup_logging(log_level or config.log_level)


if __name__ == "__main__":
    app()
