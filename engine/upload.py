"""
Upload speed stage.

Repeated POSTs of freshly generated random chunks, sampled by
:class:`ThroughputSampler`.
"""
from __future__ import annotations

from typing import Callable, Optional

from .cancel import CancellationToken
from .constants import DEFAULT_DURATION, UPLOAD_URL
from .throughput import ThroughputResult, ThroughputSampler


def upload_status(speed_mbps: float) -> str:
    if speed_mbps > 20:
        return "Great upload speed!"
    if speed_mbps > 10:
        return "Upload speed is good..."
    return "Measuring upload speed..."


class UploadTester:
    """Measure upload throughput against a POST sink."""

    def __init__(
        self,
        source,  # noqa: ANN001 (SampleSource or compatible)
        url: str = UPLOAD_URL,
        duration_seconds: float = DEFAULT_DURATION,
    ) -> None:
        self.source = source
        self.url = url
        self.duration_seconds = duration_seconds
        self.on_progress: Optional[Callable[[float, float], None]] = None

    async def test(self, token: CancellationToken) -> ThroughputResult:
        sampler = ThroughputSampler(duration_seconds=self.duration_seconds)
        sampler.on_progress = self.on_progress
        stream = self.source.upload(self.url, self.duration_seconds, token)
        return await sampler.run(stream)
