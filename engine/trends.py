"""
History summaries and comparison helpers.

Pure functions over a history snapshot (most recent first).
"""
from __future__ import annotations

import statistics
from typing import Dict, Optional, Sequence

from .history import TestResult

_FALLBACK_BEST_DOWNLOAD = 15.0
_FALLBACK_AVERAGE_DOWNLOAD = 10.0
_FALLBACK_BEST_PING = 25.0


def best_download(history: Sequence[TestResult]) -> float:
    if not history:
        return _FALLBACK_BEST_DOWNLOAD
    best = max(r.download_mbps for r in history)
    return best if best > 0 else _FALLBACK_BEST_DOWNLOAD


def average_download(history: Sequence[TestResult]) -> float:
    speeds = [r.download_mbps for r in history if r.download_mbps > 0]
    if not speeds:
        return _FALLBACK_AVERAGE_DOWNLOAD
    avg = statistics.mean(speeds)
    return round(avg, 1) if avg < 10 else float(round(avg))


def best_ping(history: Sequence[TestResult]) -> float:
    """Lowest plausible ping; lower is better."""
    pings = [r.ping_ms for r in history if 0 < r.ping_ms < 1000]
    if not pings:
        return _FALLBACK_BEST_PING
    return min(pings)


def speed_trend(current: float, previous: float, lower_is_better: bool = False) -> str:
    """``"up"`` for an improvement, ``"down"`` for a regression, else ``"same"``."""
    if current == previous:
        return "same"
    improved = current < previous if lower_is_better else current > previous
    return "up" if improved else "down"


def compare_with_previous(
    current: TestResult,
    history: Sequence[TestResult],
) -> Optional[Dict[str, float]]:
    """
    Deltas between *current* and the newest other entry in *history*.

    Returns None when there is nothing to compare against.
    """
    previous = next((r for r in history if r.id != current.id), None)
    if previous is None:
        return None

    return {
        "ping_delta": current.ping_ms - previous.ping_ms,
        "download_delta": current.download_mbps - previous.download_mbps,
        "upload_delta": current.upload_mbps - previous.upload_mbps,
        "prev_ping": previous.ping_ms,
        "prev_download": previous.download_mbps,
        "prev_upload": previous.upload_mbps,
    }


def format_delta(value: float, unit: str, invert: bool = False) -> str:
    """
    Format a delta value with a +/- prefix and ``rich`` colour markup.

    *invert*: True for metrics where lower is better (ping).
    """
    if abs(value) < 0.01:
        return "[dim](same)[/dim]"

    sign = "+" if value > 0 else ""
    is_good = (value < 0) if invert else (value > 0)
    color = "green" if is_good else "red"

    return f"[{color}]{sign}{value:.1f} {unit}[/{color}]"
