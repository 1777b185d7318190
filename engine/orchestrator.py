"""
Test orchestrator: runs Ping -> Download -> Upload and records the result.

Usage::

    engine = SpeedTestEngine(config, history=HistoryStore(JsonFileStore()))
    engine.load_history()
    engine.subscribe(lambda snap: print(snap.stage, snap.progress))
    snapshot = await engine.start_test()

``abort_test()`` may be called from any callback or signal handler while a
run is active; the run then ends in ``Stage.ABORTED`` instead of
``COMPLETE`` or ``FAILED``.

The *source* passed to the engine must provide ``probe()``, ``download()``
and ``upload()`` with the signatures of :class:`~engine.probes.SampleSource`.
When it is omitted, a ``SampleSource`` is opened for each run.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from .cancel import CancellationToken
from .config import EngineConfig
from .constants import DOWNLOAD_RANGE, PING_RANGE, UPLOAD_RANGE
from .download import DownloadTester, download_status
from .errors import RunInProgress, StageCancelled
from .geo import ClientInfo, ClientLocator
from .history import HistoryStore, MemoryStore, TestResult
from .latency import LatencyTester
from .probes import SampleSource
from .session import SessionSnapshot, Stage, TestSession
from .stats import ping_quality
from .upload import UploadTester, upload_status

logger = logging.getLogger(__name__)

Observer = Callable[[SessionSnapshot], None]


class SpeedTestEngine:
    """Owns the session, the history and at most one in-flight run."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        source=None,  # noqa: ANN001
        history: Optional[HistoryStore] = None,
        locator: Optional[ClientLocator] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self._source = source
        self._history = history or HistoryStore(MemoryStore())
        self._locator = locator or ClientLocator()
        self._session = TestSession()
        self._observers: List[Observer] = []
        self._running = False

    # -- Observation --------------------------------------------------------

    @property
    def session(self) -> SessionSnapshot:
        return self._session.snapshot()

    @property
    def history(self) -> Tuple[TestResult, ...]:
        return self._history.snapshot()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def client_info(self) -> Optional[ClientInfo]:
        """The resolved client triple, once a run has looked it up."""
        return self._locator.info

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register *observer*; returns a callable that unregisters it."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def _notify(self) -> None:
        snap = self._session.snapshot()
        for observer in list(self._observers):
            observer(snap)

    # -- History ------------------------------------------------------------

    def load_history(self) -> Tuple[TestResult, ...]:
        return self._history.load()

    def clear_history(self) -> None:
        self._history.clear()
        logger.info("History cleared")

    # -- Control ------------------------------------------------------------

    def abort_test(self) -> bool:
        """Fire the active run's cancellation token.  Idempotent."""
        token = self._session.cancellation
        if token is None:
            return False
        if not token.cancelled:
            logger.info("Abort requested during %s stage", self._session.stage.value)
        token.cancel()
        return True

    def reset_after_completion(self) -> bool:
        """Return a finished session to Idle; no-op while running or idle."""
        if self._running or not self._session.stage.terminal:
            return False
        self._session.reset()
        self._notify()
        return True

    async def start_test(self) -> SessionSnapshot:
        """
        Execute one full run and return the final session snapshot.

        Raises ``RunInProgress`` if a run is already active.
        """
        if self._running:
            raise RunInProgress("A speed test is already running")
        if self._session.stage.terminal:
            self._session.reset()

        self._running = True
        token = CancellationToken()
        session = self._session
        session.cancellation = token
        locate = asyncio.ensure_future(self._locator.locate())

        try:
            if self._source is not None:
                await self._run(session, token, self._source, locate)
            else:
                async with SampleSource() as source:
                    await self._run(session, token, source, locate)
        except StageCancelled:
            logger.info("Test stopped during %s stage", session.stage.value)
            self._end(session, None)
        except asyncio.CancelledError:
            self._end(session, None)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Speed test failed during %s stage: %s", session.stage.value, exc)
            self._end(session, str(exc) or type(exc).__name__)
        finally:
            if not locate.done():
                locate.cancel()
            await asyncio.gather(locate, return_exceptions=True)
            self._running = False
            self._notify()

        return session.snapshot()

    @staticmethod
    def _end(session: TestSession, error: Optional[str]) -> None:
        """Move an interrupted run to Aborted (no error) or Failed."""
        if not session.stage.active:
            session.cancellation = None
            return
        if error is None:
            session.abort()
        else:
            session.fail(error)

    @staticmethod
    async def _resolve_client(
        locate: "asyncio.Future[ClientInfo]",
        token: CancellationToken,
    ) -> ClientInfo:
        try:
            return await token.race(locate)
        except StageCancelled:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Client lookup failed, using placeholders: %s", exc)
            return ClientInfo.placeholder()

    # -- Stages -------------------------------------------------------------

    def _enter(self, session: TestSession, stage: Stage, status: str) -> None:
        session.enter(stage)
        session.set_status(status)
        logger.info("Entering %s stage", stage.value)
        self._notify()

    async def _run(
        self,
        session: TestSession,
        token: CancellationToken,
        source,  # noqa: ANN001
        locate: "asyncio.Future[ClientInfo]",
    ) -> None:
        ping = await self._run_ping(session, token, source)
        download = await self._run_download(session, token, source)
        upload = await self._run_upload(session, token, source)

        session.set_status("Finalizing results...")
        self._notify()
        client = await self._resolve_client(locate, token)

        result = TestResult.create(
            ping_ms=ping,
            download_mbps=download,
            upload_mbps=upload,
            location=client.location,
            provider=client.provider,
            ip=client.ip,
        )
        session.complete(result)
        logger.info(
            "Test complete: ping %.1f ms, down %.1f Mbps, up %.1f Mbps",
            result.ping_ms, result.download_mbps, result.upload_mbps,
        )
        try:
            self._history.append(result)
        except OSError as exc:
            logger.error("Could not save result to history: %s", exc)

    async def _run_ping(self, session: TestSession, token: CancellationToken, source) -> float:  # noqa: ANN001
        self._enter(session, Stage.PING, "Checking your connection quality...")

        tester = LatencyTester(
            source,
            endpoints=self.config.ping_endpoints,
            ping_count=self.config.ping_count,
            timeout=self.config.ping_timeout,
        )

        def _progress(local: float, live: Optional[float]) -> None:
            session.advance(PING_RANGE, local)
            if live is not None:
                session.publish("ping", live)
            self._notify()

        tester.on_progress = _progress
        estimate = await tester.test(token)

        session.finalize("ping", estimate.value_ms, degraded=estimate.degraded)
        session.advance(PING_RANGE, 100)
        if estimate.degraded:
            session.set_status("Ping measurement unavailable, continuing")
        else:
            session.set_status(f"{ping_quality(estimate.value_ms)} ping detected")
        self._notify()
        return estimate.value_ms

    async def _run_download(self, session: TestSession, token: CancellationToken, source) -> float:  # noqa: ANN001
        self._enter(session, Stage.DOWNLOAD, "Starting download speed test...")

        tester = DownloadTester(
            source,
            url=self.config.download_url,
            duration_seconds=self.config.download_duration,
        )

        def _progress(local: float, mbps: float) -> None:
            session.advance(DOWNLOAD_RANGE, local)
            session.publish("download", round(mbps, 1))
            session.set_status(download_status(mbps))
            self._notify()

        tester.on_progress = _progress
        result = await tester.test(token)

        session.finalize("download", result.speed_mbps)
        session.advance(DOWNLOAD_RANGE, 100)
        session.set_status("Download complete! Preparing upload test...")
        self._notify()
        return result.speed_mbps

    async def _run_upload(self, session: TestSession, token: CancellationToken, source) -> float:  # noqa: ANN001
        self._enter(session, Stage.UPLOAD, "Upload test in progress...")

        tester = UploadTester(
            source,
            url=self.config.upload_url,
            duration_seconds=self.config.upload_duration,
        )

        def _progress(local: float, mbps: float) -> None:
            session.advance(UPLOAD_RANGE, local)
            session.publish("upload", round(mbps, 1))
            session.set_status(upload_status(mbps))
            self._notify()

        tester.on_progress = _progress
        result = await tester.test(token)

        session.finalize("upload", result.speed_mbps)
        session.advance(UPLOAD_RANGE, 100)
        self._notify()
        return result.speed_mbps
