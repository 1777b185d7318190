"""
Rich-based terminal dashboard for speed test sessions.

All formatting helpers live in ``engine.stats`` -- this module only does
presentation via the ``rich`` library.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from engine.geo import ClientInfo
from engine.history import TestResult
from engine.session import SessionSnapshot, Stage
from engine.stats import format_latency, format_speed, format_speed_value
from engine.trends import (
    average_download,
    best_download,
    best_ping,
    compare_with_previous,
    format_delta,
)

console = Console()


# ---------------------------------------------------------------------------
# Histogram helper
# ---------------------------------------------------------------------------

_BARS = "▁▂▃▄▅▆▇█"


def create_histogram(values: List[float]) -> str:
    """Return a single-line Unicode bar-chart."""
    if not values:
        return "No data"

    lo, hi = min(values), max(values)
    span = hi - lo if hi > lo else 1.0
    return "".join(
        _BARS[min(int((v - lo) / span * (len(_BARS) - 1)), len(_BARS) - 1)]
        for v in values
    )


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------

def print_header() -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]speedcheck[/bold cyan]\n"
            "[dim]Ping, download and upload in one run[/dim]",
            border_style="cyan",
        )
    )
    console.print()


def print_client_info(info: ClientInfo) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style="dim")
    table.add_column(style="bold")
    table.add_row("IP Address:", info.ip)
    table.add_row("Provider:", info.provider)
    table.add_row("Location:", info.location)
    console.print(Panel(table, title="[bold]Client Info[/bold]", border_style="blue"))


def print_final_results(result: TestResult, history: Sequence[TestResult] = ()) -> None:
    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Provider:[/bold cyan] {result.provider}  "
            f"[dim]({result.location}, {result.ip})[/dim]\n\n"
            f"[bold white]   Ping:[/bold white]  [bold yellow]{format_latency(result.ping_ms)}[/bold yellow]\n"
            f"[bold white]   Download:[/bold white]  [bold green]{format_speed(result.download_mbps)}[/bold green]\n"
            f"[bold white]   Upload:[/bold white]  [bold blue]{format_speed(result.upload_mbps)}[/bold blue]",
            title="[bold]Results[/bold]",
            border_style="cyan",
        )
    )

    delta = compare_with_previous(result, history)
    if delta:
        console.print(
            f"  vs last: "
            f"Ping {format_delta(delta['ping_delta'], 'ms', invert=True)}  "
            f"DL {format_delta(delta['download_delta'], 'Mbps')}  "
            f"UL {format_delta(delta['upload_delta'], 'Mbps')}"
        )
    console.print()


def print_interrupted(snapshot: SessionSnapshot) -> None:
    """Summarise an aborted or failed run, keeping the two clearly apart."""
    if snapshot.stage is Stage.ABORTED:
        color, title = "yellow", "Stopped"
    else:
        color, title = "red", "Failed"

    body = (
        f"[bold {color}]{snapshot.status}[/bold {color}]\n\n"
        f"   Ping: {snapshot.ping.display()} ms\n"
        f"   Download: {snapshot.download.display()} Mbps\n"
        f"   Upload: {snapshot.upload.display()} Mbps"
    )
    if snapshot.error:
        body += f"\n\n[dim]{snapshot.error}[/dim]"
    console.print(Panel.fit(body, title=f"[bold]{title}[/bold]", border_style=color))


def print_history(entries: Sequence[TestResult]) -> None:
    if not entries:
        console.print("[dim]No test history yet.[/dim]")
        return

    table = Table(title="Test History", box=box.ROUNDED)
    table.add_column("When", style="dim")
    table.add_column("Provider")
    table.add_column("Ping", justify="right")
    table.add_column("Download", justify="right")
    table.add_column("Upload", justify="right")

    for r in entries:
        table.add_row(
            _format_timestamp(r.timestamp),
            r.provider,
            f"{format_speed_value(str(r.ping_ms))} ms",
            f"{format_speed_value(str(r.download_mbps))} Mbps",
            f"{format_speed_value(str(r.upload_mbps))} Mbps",
        )
    console.print(table)

    downloads = [r.download_mbps for r in reversed(entries)]
    console.print(
        Panel(
            f"[green]{create_histogram(downloads)}[/green]\n"
            f"[dim]Best: {format_speed(best_download(entries))}  "
            f"Average: {format_speed(average_download(entries))}  "
            f"Best ping: {format_latency(best_ping(entries))}[/dim]",
            title="Download Over Time",
        )
    )


def print_config(path: str, config: Dict[str, Any]) -> None:
    table = Table(title=f"Configuration ({path})", box=box.ROUNDED)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key in sorted(config):
        value = config[key]
        if key == "ping_endpoints" and isinstance(value, list):
            value = "\n".join(
                f"{e.get('kind', 'http')}  {e.get('url')}  x{e.get('weight', 1.0)}"
                for e in value if isinstance(e, dict)
            )
        table.add_row(key, escape(str(value)) if value != "" else "[dim](unset)[/dim]")
    console.print(table)


def _format_timestamp(ts: datetime) -> str:
    return ts.astimezone().strftime("%Y-%m-%d %H:%M")


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------

class SessionDisplay:
    """Live ``rich`` progress bar driven by session snapshots."""

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description:<9}"),
            BarColumn(bar_width=40),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[yellow]{task.fields[ping]}[/yellow] ms"),
            TextColumn("[green]{task.fields[download]}[/green]↓"),
            TextColumn("[blue]{task.fields[upload]}[/blue]↑ Mbps"),
            TimeElapsedColumn(),
            console=console,
        )
        self._task_id: Optional[int] = None

    def start(self) -> None:
        self.progress.start()
        self._task_id = self.progress.add_task(
            "Starting", total=100, ping="-", download="-", upload="-",
        )

    def update(self, snapshot: SessionSnapshot) -> None:
        if self._task_id is None:
            return
        self.progress.update(
            self._task_id,
            completed=snapshot.progress,
            description=snapshot.stage.value.capitalize(),
            ping=format_speed_value(snapshot.ping.display()),
            download=format_speed_value(snapshot.download.display()),
            upload=format_speed_value(snapshot.upload.display()),
        )

    def stop(self) -> None:
        self.progress.stop()
        self._task_id = None
