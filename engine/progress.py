"""
Stage-local to global progress translation.

Each stage owns a fixed slice of the 0-100 bar (see ``constants``); stages
report their own 0-100 completion and :func:`overall` maps it into the slice.
"""
from __future__ import annotations

from typing import Tuple

from .constants import EASE_RATE, EASE_THRESHOLD


def overall(stage_start: float, stage_end: float, stage_local: float) -> int:
    """Linear interpolation of *stage_local* (0-100) into ``[start, end]``."""
    local = max(0.0, min(100.0, stage_local))
    return round(stage_start + (stage_end - stage_start) * local / 100)


def eased_percent(elapsed_ms: float, budget_ms: float) -> float:
    """
    Stage-local percent for a time-boxed transfer.

    Linear up to ``EASE_THRESHOLD``, then advances at ``EASE_RATE`` so the
    bar keeps moving while the transfer winds down.
    """
    if budget_ms <= 0:
        return 100.0
    pct = min(100.0, max(0.0, elapsed_ms / budget_ms * 100))
    if pct < EASE_THRESHOLD:
        return pct
    return EASE_THRESHOLD + (pct - EASE_THRESHOLD) * EASE_RATE


class ProgressTracker:
    """Publishes global progress for one run, never moving backwards."""

    def __init__(self) -> None:
        self.value = 0

    def update(self, stage_range: Tuple[float, float], stage_local: float) -> int:
        start, end = stage_range
        self.value = max(self.value, overall(start, end, stage_local))
        return self.value
