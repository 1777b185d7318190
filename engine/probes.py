"""
Sample sources: single timed network probes.

Three kinds of latency probe share one contract,
``probe(endpoint, timeout, token) -> ProbeOutcome``:

    http    HEAD request, timed to the response headers
    img     GET of a tiny resource, timed to the end of the body
    ws      WebSocket opening handshake, timed to connection open

The streaming download and upload probes are async generators yielding
:class:`TransferSnapshot` values until the stream ends, the duration budget
runs out, or the cancellation token fires.

All HTTP work goes through a single ``aiohttp.ClientSession`` managed via the
async-context-manager protocol (``async with SampleSource() as source: ...``).
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
import websockets
import websockets.exceptions

from .cancel import CancellationToken
from .constants import (
    CHUNK_SIZE,
    COMMON_HEADERS,
    NO_CACHE_HEADERS,
    READ_POLL_TIMEOUT,
    RTT_CEILING_MS,
    UPLOAD_CHUNK_SIZE,
)
from .errors import ProbeError, ProbeTimeout, ProbeTransportError, StageTransportError

logger = logging.getLogger(__name__)

PROBE_KINDS = ("http", "img", "ws")

_BUDGET_SLACK = 0.005   # seconds; wait_for may wake a little early


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

@dataclass
class PingEndpoint:
    """One latency target and how much its measurements are trusted."""

    url: str
    kind: str = "http"
    weight: float = 1.0

    def __post_init__(self) -> None:
        if self.kind not in PROBE_KINDS:
            raise ValueError(f"Unknown probe kind: {self.kind!r}")
        if self.weight <= 0:
            raise ValueError("Endpoint weight must be positive")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PingEndpoint:
        return cls(
            url=str(data["url"]),
            kind=str(data.get("kind", "http")),
            weight=float(data.get("weight", 1.0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "kind": self.kind, "weight": self.weight}

    def cache_busted_url(self) -> str:
        sep = "&" if "?" in self.url else "?"
        return f"{self.url}{sep}nocache={int(time.time() * 1000)}"


@dataclass
class ProbeOutcome:
    """Result of one latency probe attempt: a timing or an error, never both."""

    endpoint: PingEndpoint
    elapsed_ms: Optional[float] = None
    error: Optional[ProbeError] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.elapsed_ms is not None


@dataclass
class TransferSnapshot:
    """Cumulative progress of a streaming transfer since it started."""

    bytes_total: int
    elapsed_ms: float


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------

class SampleSource:
    """Network-backed probes for latency, download and upload."""

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        upload_chunk_size: int = UPLOAD_CHUNK_SIZE,
    ) -> None:
        self.chunk_size = chunk_size
        self.upload_chunk_size = upload_chunk_size
        self._session: Optional[aiohttp.ClientSession] = None

    # -- Context manager ----------------------------------------------------

    async def __aenter__(self) -> SampleSource:
        timeout = aiohttp.ClientTimeout(total=None, connect=5, sock_read=5)
        self._session = aiohttp.ClientSession(headers=COMMON_HEADERS, timeout=timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._session:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError(
                "SampleSource must be used as an async context manager "
                "(async with SampleSource() as source: ...)"
            )
        return self._session

    # -- Latency ------------------------------------------------------------

    async def probe(
        self,
        endpoint: PingEndpoint,
        timeout: float,
        token: CancellationToken,
    ) -> ProbeOutcome:
        """
        Time one request to *endpoint*.

        Timeouts and transport failures come back as ``ProbeOutcome.error``;
        only cancellation raises (``StageCancelled``).
        """
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        try:
            elapsed = await token.race(
                asyncio.wait_for(self._attempt(endpoint, timeout), timeout=timeout)
            )
        except asyncio.TimeoutError:
            return ProbeOutcome(
                endpoint,
                error=ProbeTimeout(f"{endpoint.url} timed out after {timeout:.1f}s"),
            )
        except (
            aiohttp.ClientError,
            websockets.exceptions.WebSocketException,
            OSError,
        ) as exc:
            return ProbeOutcome(
                endpoint,
                error=ProbeTransportError(f"{endpoint.url}: {str(exc) or type(exc).__name__}"),
            )

        return ProbeOutcome(endpoint, elapsed_ms=min(elapsed, RTT_CEILING_MS))

    async def _attempt(self, endpoint: PingEndpoint, timeout: float) -> float:
        if endpoint.kind == "ws":
            return await self._probe_ws(endpoint, timeout)
        if endpoint.kind == "img":
            return await self._probe_img(endpoint)
        return await self._probe_http(endpoint)

    async def _probe_http(self, endpoint: PingEndpoint) -> float:
        session = self._ensure_session()
        start = time.perf_counter()
        async with session.head(
            endpoint.url,
            headers=NO_CACHE_HEADERS,
            allow_redirects=False,
        ):
            # Any status counts: the headers arriving is the signal.
            return (time.perf_counter() - start) * 1000

    async def _probe_img(self, endpoint: PingEndpoint) -> float:
        session = self._ensure_session()
        start = time.perf_counter()
        async with session.get(endpoint.cache_busted_url(), headers=NO_CACHE_HEADERS) as resp:
            resp.raise_for_status()
            await resp.read()
            return (time.perf_counter() - start) * 1000

    @staticmethod
    async def _probe_ws(endpoint: PingEndpoint, timeout: float) -> float:
        start = time.perf_counter()
        async with websockets.connect(
            endpoint.url,
            additional_headers=COMMON_HEADERS,
            ping_interval=None,
            close_timeout=1,
            open_timeout=timeout,
        ):
            return (time.perf_counter() - start) * 1000

    # -- Download -----------------------------------------------------------

    async def download(
        self,
        url: str,
        duration: float,
        token: CancellationToken,
    ) -> AsyncIterator[TransferSnapshot]:
        """Stream *url* for at most *duration* seconds."""
        session = self._ensure_session()
        headers = {**NO_CACHE_HEADERS, "Accept-Encoding": "identity"}

        try:
            resp = await token.race(session.get(url, headers=headers))
        except (aiohttp.ClientError, OSError) as exc:
            raise StageTransportError(f"Download failed: {str(exc) or type(exc).__name__}") from exc

        try:
            if resp.status >= 400:
                raise StageTransportError(f"Download failed: HTTP {resp.status}")

            received = 0
            start = time.perf_counter()

            while True:
                elapsed = time.perf_counter() - start
                if elapsed >= duration:
                    break
                try:
                    chunk = await token.race(
                        asyncio.wait_for(
                            resp.content.read(self.chunk_size),
                            timeout=min(READ_POLL_TIMEOUT, duration - elapsed),
                        )
                    )
                except asyncio.TimeoutError:
                    # Stalled read; report elapsed time so the caller can stop.
                    yield TransferSnapshot(received, (time.perf_counter() - start) * 1000)
                    continue
                except (aiohttp.ClientError, OSError) as exc:
                    raise StageTransportError(
                        f"Download failed: {str(exc) or type(exc).__name__}"
                    ) from exc

                if not chunk:
                    logger.debug("Download stream ended after %d bytes", received)
                    break

                received += len(chunk)
                yield TransferSnapshot(received, (time.perf_counter() - start) * 1000)
        finally:
            resp.close()

    # -- Upload -------------------------------------------------------------

    async def upload(
        self,
        url: str,
        duration: float,
        token: CancellationToken,
    ) -> AsyncIterator[TransferSnapshot]:
        """POST fresh random chunks to *url* for at most *duration* seconds."""
        session = self._ensure_session()
        sent = 0
        start = time.perf_counter()

        while True:
            remaining = duration - (time.perf_counter() - start)
            if remaining <= 0:
                break

            body = os.urandom(self.upload_chunk_size)
            try:
                await token.race(
                    asyncio.wait_for(self._post(session, url, body), timeout=remaining)
                )
            except asyncio.TimeoutError as exc:
                if time.perf_counter() - start >= duration - _BUDGET_SLACK:
                    logger.debug("Upload budget reached mid-request; chunk not counted")
                    break
                raise StageTransportError("Upload failed: request timed out") from exc
            except (aiohttp.ClientError, OSError) as exc:
                raise StageTransportError(f"Upload failed: {str(exc) or type(exc).__name__}") from exc

            sent += len(body)
            yield TransferSnapshot(sent, (time.perf_counter() - start) * 1000)

    @staticmethod
    async def _post(session: aiohttp.ClientSession, url: str, body: bytes) -> None:
        async with session.post(
            url,
            data=body,
            headers={"Content-Type": "application/octet-stream"},
        ) as resp:
            await resp.read()
            if resp.status >= 400:
                raise StageTransportError(f"Upload failed: HTTP {resp.status}")
