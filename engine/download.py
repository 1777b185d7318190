"""
Download speed stage.

A single long-lived GET stream, sampled by :class:`ThroughputSampler`.
"""
from __future__ import annotations

from typing import Callable, Optional

from .cancel import CancellationToken
from .constants import DEFAULT_DURATION, DOWNLOAD_URL
from .throughput import ThroughputResult, ThroughputSampler


def download_status(speed_mbps: float) -> str:
    if speed_mbps > 50:
        return "Excellent download speed detected!"
    if speed_mbps > 25:
        return "Good download speed detected!"
    if speed_mbps > 10:
        return "Download speed is stable..."
    return "Measuring download speed..."


class DownloadTester:
    """Measure download throughput from one large streamable resource."""

    def __init__(
        self,
        source,  # noqa: ANN001 (SampleSource or compatible)
        url: str = DOWNLOAD_URL,
        duration_seconds: float = DEFAULT_DURATION,
    ) -> None:
        self.source = source
        self.url = url
        self.duration_seconds = duration_seconds
        self.on_progress: Optional[Callable[[float, float], None]] = None

    async def test(self, token: CancellationToken) -> ThroughputResult:
        sampler = ThroughputSampler(duration_seconds=self.duration_seconds)
        sampler.on_progress = self.on_progress
        stream = self.source.download(self.url, self.duration_seconds, token)
        return await sampler.run(stream)
