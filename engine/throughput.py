"""
Time-boxed throughput sampling shared by the download and upload stages.

The sampler consumes :class:`~engine.probes.TransferSnapshot` values from a
streaming probe, publishes an instantaneous speed roughly every
``SAMPLE_INTERVAL_MS``, and closes the stream once the duration budget is
spent.  Speeds are ``bytes / seconds / 2**20 * 8`` (binary megabits).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, List, Optional

from .constants import DEFAULT_DURATION, SAMPLE_INTERVAL_MS
from .probes import TransferSnapshot
from .progress import eased_percent

logger = logging.getLogger(__name__)

_MIN_ELAPSED_MS = 1.0


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class ThroughputResult:
    """Outcome of one download or upload stage."""

    speed_mbps: float = 0.0
    bytes_total: int = 0
    duration_ms: float = 0.0
    samples: List[float] = field(default_factory=list)
    completed: bool = False   # stream ended before the budget ran out

    def to_dict(self) -> dict:
        return {
            "speed_mbps": self.speed_mbps,
            "bytes_total": self.bytes_total,
            "duration_ms": round(self.duration_ms, 2),
            "samples": self.samples,
            "completed": self.completed,
        }


def instantaneous_mbps(bytes_total: int, elapsed_ms: float) -> Optional[float]:
    """Average speed since the start, or None while elapsed is ~0."""
    if elapsed_ms < _MIN_ELAPSED_MS:
        return None
    return bytes_total / (elapsed_ms / 1000) / 2 ** 20 * 8


# ---------------------------------------------------------------------------
# Sampler
# ---------------------------------------------------------------------------

class ThroughputSampler:
    """
    Drive one streaming transfer to completion or to its time budget.

    ``on_progress(stage_percent, mbps)`` is called at each publish tick with
    the eased stage-local percentage and the latest speed estimate.
    """

    def __init__(
        self,
        duration_seconds: float = DEFAULT_DURATION,
        interval_ms: float = SAMPLE_INTERVAL_MS,
    ) -> None:
        self.duration_seconds = duration_seconds
        self.interval_ms = interval_ms
        self.on_progress: Optional[Callable[[float, float], None]] = None

    async def run(self, stream: AsyncIterator[TransferSnapshot]) -> ThroughputResult:
        budget_ms = self.duration_seconds * 1000
        result = ThroughputResult()

        bytes_total = 0
        elapsed_ms = 0.0
        estimate = 0.0
        last_publish = 0.0

        try:
            async for snap in stream:
                bytes_total = snap.bytes_total
                elapsed_ms = snap.elapsed_ms

                if elapsed_ms - last_publish >= self.interval_ms:
                    speed = instantaneous_mbps(bytes_total, elapsed_ms)
                    if speed is not None:
                        estimate = speed
                        result.samples.append(round(speed, 1))
                    last_publish = elapsed_ms
                    if self.on_progress:
                        self.on_progress(eased_percent(elapsed_ms, budget_ms), estimate)

                if elapsed_ms >= budget_ms:
                    break
            else:
                result.completed = True
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        final = instantaneous_mbps(bytes_total, elapsed_ms)
        if final is None:
            final = estimate

        result.speed_mbps = max(0.0, round(final, 1))
        result.bytes_total = bytes_total
        result.duration_ms = elapsed_ms
        logger.debug(
            "Transfer finished: %d bytes in %.0f ms -> %.1f Mbps",
            bytes_total, elapsed_ms, result.speed_mbps,
        )
        return result
