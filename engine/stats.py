"""
Latency aggregation and measurement statistics.

Pure functions and lightweight dataclasses -- no I/O, no side effects.
Everything here is deterministic and easy to unit-test.
"""
from __future__ import annotations

import math
import statistics
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .constants import (
    FALLBACK_PING_MS,
    FAST_ADJUSTMENT,
    FAST_RTT_MS,
    FAST_SHARE,
    IQR_FACTOR,
    MIN_AGGREGATE_SAMPLES,
    RTT_CEILING_MS,
    SLOW_ADJUSTMENT,
    SLOW_RTT_MS,
    SLOW_SHARE,
)


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ProbeSample:
    """One successful latency probe, capped to bound outlier influence."""

    rtt_ms: float
    source_weight: float = 1.0

    def __post_init__(self) -> None:
        if self.source_weight <= 0:
            raise ValueError("source_weight must be positive")
        if math.isnan(self.rtt_ms) or self.rtt_ms < 0:
            self.rtt_ms = 0.0
        self.rtt_ms = min(self.rtt_ms, RTT_CEILING_MS)


@dataclass
class LatencyEstimate:
    """Final output of the latency aggregator."""

    value_ms: float = FALLBACK_PING_MS
    degraded: bool = False
    samples: List[float] = field(default_factory=list)
    kept: List[float] = field(default_factory=list)
    adjustment: float = 1.0
    jitter_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "value_ms": self.value_ms,
            "degraded": self.degraded,
            "samples": [round(s, 1) for s in self.samples],
            "kept": [round(s, 1) for s in self.kept],
            "adjustment": self.adjustment,
            "jitter_ms": round(self.jitter_ms, 3),
        }


# ---------------------------------------------------------------------------
# Pure helper functions
# ---------------------------------------------------------------------------

def calculate_jitter(samples: Sequence[float]) -> float:
    """Mean absolute difference between consecutive samples."""
    if len(samples) < 2:
        return 0.0
    diffs = [abs(samples[i] - samples[i - 1]) for i in range(1, len(samples))]
    return statistics.mean(diffs)


def calculate_percentile(samples: Sequence[float], percentile: float) -> float:
    """Linear-interpolation percentile."""
    if not samples:
        return 0.0

    ordered = sorted(samples)
    n = len(ordered)
    idx = (percentile / 100) * (n - 1)
    lower = int(idx)
    upper = min(lower + 1, n - 1)
    weight = idx - lower
    return ordered[lower] * (1 - weight) + ordered[upper] * weight


def recency_weights(n: int) -> List[float]:
    """Linear weights favouring later samples: 1/n, 2/n, ..., 1."""
    return [(i + 1) / n for i in range(n)]


def weighted_mean(values: Sequence[float], weights: Sequence[float]) -> float:
    total = sum(weights)
    if not values or total <= 0:
        return 0.0
    return sum(v * w for v, w in zip(values, weights)) / total


def weighted_median(values: Sequence[float], weights: Sequence[float]) -> float:
    """Smallest value whose cumulative weight reaches half the total."""
    if not values:
        return 0.0
    pairs = sorted(zip(values, weights))
    half = sum(weights) / 2
    acc = 0.0
    for value, weight in pairs:
        acc += weight
        if acc >= half:
            return value
    return pairs[-1][0]


def running_estimate(samples: Sequence[ProbeSample]) -> float:
    """Live latency preview: source weight x recency weight."""
    if not samples:
        return 0.0
    recency = recency_weights(len(samples))
    weights = [s.source_weight * r for s, r in zip(samples, recency)]
    return round(weighted_mean([s.rtt_ms for s in samples], weights), 1)


def iqr_bounds(values: Sequence[float]) -> Tuple[float, float]:
    """Tukey fences ``[max(0, Q1 - 1.5 IQR), Q3 + 1.5 IQR]``."""
    q1 = calculate_percentile(values, 25)
    q3 = calculate_percentile(values, 75)
    iqr = q3 - q1
    return max(0.0, q1 - IQR_FACTOR * iqr), q3 + IQR_FACTOR * iqr


def filter_outliers(samples: Sequence[ProbeSample]) -> List[ProbeSample]:
    lo, hi = iqr_bounds([s.rtt_ms for s in samples])
    return [s for s in samples if lo <= s.rtt_ms <= hi]


def connection_adjustment(rtts: Sequence[float]) -> float:
    """Scale factor for the wired / wireless overhead heuristic."""
    if not rtts:
        return 1.0
    n = len(rtts)
    fast = sum(1 for r in rtts if r < FAST_RTT_MS)
    slow = sum(1 for r in rtts if r > SLOW_RTT_MS)
    if fast / n > FAST_SHARE:
        return FAST_ADJUSTMENT
    if slow / n > SLOW_SHARE:
        return SLOW_ADJUSTMENT
    return 1.0


def aggregate_latency(samples: Sequence[ProbeSample]) -> LatencyEstimate:
    """
    Reduce the Ping stage's samples to one stable estimate.

    With three or more samples, outliers outside the IQR fences are dropped
    and the source-weighted mean of the survivors is scaled by
    :func:`connection_adjustment`.  Fewer samples fall back to a plain
    source-weighted mean; none at all yields ``FALLBACK_PING_MS`` flagged as
    degraded.
    """
    raw = [s.rtt_ms for s in samples]

    if not samples:
        return LatencyEstimate(value_ms=FALLBACK_PING_MS, degraded=True)

    if len(samples) < MIN_AGGREGATE_SAMPLES:
        value = weighted_mean(raw, [s.source_weight for s in samples])
        return LatencyEstimate(
            value_ms=_finite(value),
            samples=raw,
            kept=list(raw),
            jitter_ms=calculate_jitter(raw),
        )

    kept = filter_outliers(samples)
    if kept:
        value = weighted_mean([s.rtt_ms for s in kept], [s.source_weight for s in kept])
    else:
        value = weighted_median(raw, [s.source_weight for s in samples])

    factor = connection_adjustment(raw)
    return LatencyEstimate(
        value_ms=_finite(value * factor),
        samples=raw,
        kept=[s.rtt_ms for s in kept],
        adjustment=factor,
        jitter_ms=calculate_jitter(raw),
    )


def _finite(value: float) -> float:
    if math.isnan(value) or math.isinf(value) or value < 0:
        return 0.0
    return round(value, 1)


def ping_quality(ping_ms: Optional[float]) -> str:
    """Coarse quality label for a final latency value."""
    if ping_ms is None:
        return "Unknown"
    if ping_ms < 20:
        return "Excellent"
    if ping_ms < 50:
        return "Good"
    if ping_ms < 100:
        return "Average"
    return "High"


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_speed(speed_mbps: float) -> str:
    """Human-readable speed string."""
    if speed_mbps >= 1000:
        return f"{speed_mbps / 1000:.2f} Gbps"
    return f"{speed_mbps:.2f} Mbps"


def format_latency(latency_ms: float) -> str:
    """Human-readable latency string."""
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.1f} ms"


def format_speed_value(value: str) -> str:
    """Compact gauge rendering of a metric display string."""
    if value in ("-", "N/A", "--", "..."):
        return value
    try:
        num = float(value)
    except (TypeError, ValueError):
        return "--"
    if math.isnan(num):
        return "--"

    if num < 1:
        return f"{num:.2f}"
    if num < 10:
        return f"{num:.1f}"
    if num < 100:
        return str(round(num))
    if num < 1000:
        return str(round(num / 5) * 5)
    return "999+"
