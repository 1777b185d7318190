#!/usr/bin/env python3
"""
speedcheck -- ping, download and upload measurement from the terminal.

Usage::

    python speedcheck.py                      # rich dashboard
    python speedcheck.py --simple             # plain text
    python speedcheck.py --json               # JSON to stdout
    python speedcheck.py -o result.json       # save to file
    python speedcheck.py --csv log.csv        # append CSV row
    python speedcheck.py --history            # show past results
    python speedcheck.py --clear-history      # forget past results
    python speedcheck.py --show-config        # stored settings
    python speedcheck.py --set ping_count=12  # change a setting
    python speedcheck.py --repeat 5 --interval 60

Press Ctrl+C during a run to stop it cleanly.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
import time
from typing import Any, Dict, Optional, Sequence, Tuple

from engine.config import (
    DEFAULTS,
    EngineConfig,
    config_path,
    get_config_value,
    load_config,
    set_config_value,
)
from engine.errors import ConfigError
from engine.history import HistoryStore, JsonFileStore
from engine.logging_setup import configure_logging
from engine.orchestrator import SpeedTestEngine
from engine.session import SessionSnapshot, Stage
from ui.dashboard import (
    SessionDisplay,
    console,
    print_client_info,
    print_config,
    print_final_results,
    print_header,
    print_history,
    print_interrupted,
)
from ui.output import append_csv, create_result_json, format_text_result, save_json

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ABORTED = 130


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

def build_config(args: argparse.Namespace, base: Optional[Dict[str, Any]] = None) -> EngineConfig:
    """Merge CLI overrides into the stored config.  Raises ``ConfigError``."""
    data = dict(base if base is not None else load_config())
    for key in ("ping_count", "download_duration", "upload_duration"):
        value = getattr(args, key, None)
        if value is not None:
            data[key] = value
    return EngineConfig.from_dict(data)


def parse_setting(text: str) -> Tuple[str, Any]:
    """Split ``KEY=VALUE``; VALUE is read as JSON when it parses, else kept as text."""
    key, sep, raw = text.partition("=")
    key = key.strip()
    if not sep or not key:
        raise ConfigError(f"Expected KEY=VALUE, got {text!r}")
    if key not in DEFAULTS:
        raise ConfigError(f"Unknown config key: {key}")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return key, value


def apply_settings(settings: Sequence[str], stored: Dict[str, Any]) -> None:
    """Validate every ``KEY=VALUE`` against *stored*, then persist them."""
    updates = dict(parse_setting(s) for s in settings)
    EngineConfig.from_dict({**stored, **updates})
    for key, value in updates.items():
        set_config_value(key, value)
        console.print(f"[green]{key}[/green] = {get_config_value(key)!r}")
    console.print(f"[dim]Saved to {config_path()}[/dim]")


def exit_code(snapshot: SessionSnapshot) -> int:
    if snapshot.stage is Stage.COMPLETE:
        return EXIT_OK
    if snapshot.stage is Stage.ABORTED:
        return EXIT_ABORTED
    return EXIT_FAILED


# ---------------------------------------------------------------------------
# Core test runner
# ---------------------------------------------------------------------------

async def run_speedcheck(
    engine: SpeedTestEngine,
    *,
    json_output: bool = False,
    output_file: Optional[str] = None,
    csv_file: Optional[str] = None,
    simple: bool = False,
) -> SessionSnapshot:
    """Execute one run, render it, and export the result."""
    show_ui = not json_output and not simple

    if show_ui:
        print_header()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, engine.abort_test)
        handles_sigint = True
    except (NotImplementedError, RuntimeError):
        handles_sigint = False

    display = SessionDisplay() if show_ui else None
    unsubscribe = engine.subscribe(display.update) if display else None

    try:
        if display:
            display.start()
        snapshot = await engine.start_test()
    finally:
        if display:
            display.stop()
        if unsubscribe:
            unsubscribe()
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)

    result = snapshot.result
    client = engine.client_info

    if show_ui:
        if client:
            print_client_info(client)
        if result:
            print_final_results(result, engine.history)
        else:
            print_interrupted(snapshot)
    elif simple:
        if result:
            print(format_text_result(result))
        else:
            print(snapshot.status)
            print(f"Ping: {snapshot.ping.display()}")
            print(f"Download: {snapshot.download.display()}")
            print(f"Upload: {snapshot.upload.display()}")
            if snapshot.error:
                print(f"Error: {snapshot.error}", file=sys.stderr)

    result_json = create_result_json(snapshot, client.to_dict() if client else None)

    if json_output:
        print(json.dumps(result_json, indent=2))

    if output_file:
        save_json(result_json, output_file)
        if not json_output:
            console.print(f"\n[green]Results saved to:[/green] {output_file}")

    if csv_file and result:
        append_csv(csv_file, result)
        if not json_output:
            console.print(f"[green]CSV row appended to:[/green] {csv_file}")

    return snapshot


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="speedcheck -- ping, download and upload measurement",
    )
    # Output modes
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")
    parser.add_argument("--output", "-o", type=str, metavar="FILE", help="Save results to JSON file")
    parser.add_argument("--csv", type=str, metavar="FILE", help="Append results as CSV row")
    parser.add_argument("--simple", "-s", action="store_true", help="Simple output mode (no dashboard)")

    # Test parameters
    parser.add_argument("--ping-count", type=int, metavar="N", help="Number of latency probes (default: 8)")
    parser.add_argument("--download-duration", type=float, metavar="SECS", help="Download test duration in seconds (default: 10)")
    parser.add_argument("--upload-duration", type=float, metavar="SECS", help="Upload test duration in seconds (default: 10)")

    # Repeat mode
    parser.add_argument("--repeat", type=int, default=1, metavar="N", help="Run the test N times (default: 1)")
    parser.add_argument("--interval", type=float, default=60.0, metavar="SECS", help="Seconds between repeated tests (default: 60)")

    # History
    parser.add_argument("--history", action="store_true", help="Show past test results and exit")
    parser.add_argument("--clear-history", action="store_true", help="Delete past test results and exit")

    # Configuration
    parser.add_argument("--show-config", action="store_true", help="Show the stored configuration and exit")
    parser.add_argument("--set", action="append", metavar="KEY=VALUE", help="Store a config value (repeatable) and exit")

    # Diagnostics
    parser.add_argument("--verbose", "-v", action="store_true", help="Log probe and stage details to stderr")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    stored = load_config()

    configure_logging(
        level="DEBUG" if args.verbose else str(stored.get("log_level", "WARNING")),
        log_file=stored.get("log_file") or None,
    )

    if args.show_config:
        print_config(config_path(), stored)
        return

    if args.set:
        try:
            apply_settings(args.set, stored)
        except ConfigError as exc:
            console.print(f"[red]Error: {exc}[/red]")
            sys.exit(EXIT_FAILED)
        return

    try:
        config = build_config(args, stored)
    except ConfigError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(EXIT_FAILED)

    if args.repeat < 1:
        console.print("[red]Error: --repeat must be >= 1[/red]")
        sys.exit(EXIT_FAILED)

    engine = SpeedTestEngine(config, history=HistoryStore(JsonFileStore()))
    engine.load_history()

    if args.history:
        print_history(engine.history)
        return

    if args.clear_history:
        engine.clear_history()
        console.print("[green]History cleared.[/green]")
        return

    csv_file = args.csv or stored.get("csv_file") or None
    code = EXIT_OK

    try:
        for run_idx in range(args.repeat):
            if args.repeat > 1 and not args.json:
                console.print(f"\n[bold cyan]--- Run {run_idx + 1}/{args.repeat} ---[/bold cyan]")

            snapshot = asyncio.run(
                run_speedcheck(
                    engine,
                    json_output=args.json,
                    output_file=args.output,
                    csv_file=csv_file,
                    simple=args.simple,
                )
            )
            code = exit_code(snapshot)
            if code == EXIT_ABORTED:
                break

            engine.reset_after_completion()

            # Wait between runs (but not after the last one)
            if run_idx < args.repeat - 1:
                if not args.json:
                    console.print(f"[dim]Next run in {args.interval:.0f}s...[/dim]")
                time.sleep(args.interval)

    except KeyboardInterrupt:
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        sys.exit(EXIT_ABORTED)

    sys.exit(code)


if __name__ == "__main__":
    main()
