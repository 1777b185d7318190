"""
Latency stage: sequential probes against a rotating list of endpoints.

Probes run one at a time with a short randomized gap so they do not queue
behind each other.  Individual failures are logged and dropped; only
cancellation ends the loop early.
"""
from __future__ import annotations

import logging
import random
from typing import Callable, List, Optional, Sequence, Tuple

from .cancel import CancellationToken
from .constants import (
    DEFAULT_PING_COUNT,
    DEFAULT_PING_TIMEOUT,
    PING_DELAY_MAX,
    PING_DELAY_MIN,
    PING_ENDPOINTS,
)
from .probes import PingEndpoint
from .stats import LatencyEstimate, ProbeSample, aggregate_latency, running_estimate

logger = logging.getLogger(__name__)


def default_endpoints() -> List[PingEndpoint]:
    return [PingEndpoint.from_dict(e) for e in PING_ENDPOINTS]


class LatencyTester:
    """
    Collect ``ping_count`` latency samples and aggregate them.

    ``on_progress(stage_percent, live_ms)`` fires after every attempt;
    *live_ms* is the running weighted estimate, or None until the first
    success.
    """

    def __init__(
        self,
        source,  # noqa: ANN001 (SampleSource or compatible)
        endpoints: Optional[Sequence[PingEndpoint]] = None,
        ping_count: int = DEFAULT_PING_COUNT,
        timeout: float = DEFAULT_PING_TIMEOUT,
        delay: Tuple[float, float] = (PING_DELAY_MIN, PING_DELAY_MAX),
    ) -> None:
        self.source = source
        self.endpoints = list(endpoints) if endpoints else default_endpoints()
        self.ping_count = ping_count
        self.timeout = timeout
        self.delay = delay
        self.on_progress: Optional[Callable[[float, Optional[float]], None]] = None

    async def test(self, token: CancellationToken) -> LatencyEstimate:
        samples: List[ProbeSample] = []
        live: Optional[float] = None

        for i in range(self.ping_count):
            token.raise_if_cancelled()
            endpoint = self.endpoints[i % len(self.endpoints)]

            outcome = await self.source.probe(endpoint, self.timeout, token)
            if outcome.success:
                samples.append(ProbeSample(outcome.elapsed_ms, endpoint.weight))
                live = running_estimate(samples)
                logger.debug("Ping %d/%d: %.1f ms via %s", i + 1, self.ping_count,
                             outcome.elapsed_ms, endpoint.url)
            else:
                logger.warning("Ping %d/%d failed: %s", i + 1, self.ping_count, outcome.error)

            if self.on_progress:
                self.on_progress((i + 1) / self.ping_count * 100, live)

            if i < self.ping_count - 1:
                await token.sleep(random.uniform(*self.delay))

        estimate = aggregate_latency(samples)
        if estimate.degraded:
            logger.warning("No latency probe succeeded; using fallback %.1f ms", estimate.value_ms)
        else:
            logger.info(
                "Latency %.1f ms from %d/%d samples (kept %d, x%.2f)",
                estimate.value_ms, len(samples), self.ping_count,
                len(estimate.kept), estimate.adjustment,
            )
        return estimate
