"""
Mutable state of one test run.

A :class:`TestSession` carries the current stage, global progress, status
line and the three metrics.  Every change goes through one method per
transition; observers only ever see immutable :class:`SessionSnapshot`
copies.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .cancel import CancellationToken
from .errors import InvalidTransition
from .history import TestResult
from .progress import ProgressTracker


class Stage(str, enum.Enum):
    IDLE = "idle"
    PING = "ping"
    DOWNLOAD = "download"
    UPLOAD = "upload"
    COMPLETE = "complete"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def active(self) -> bool:
        return self in (Stage.PING, Stage.DOWNLOAD, Stage.UPLOAD)

    @property
    def terminal(self) -> bool:
        return self in (Stage.COMPLETE, Stage.ABORTED, Stage.FAILED)


_TRANSITIONS = {
    Stage.IDLE: {Stage.PING},
    Stage.PING: {Stage.DOWNLOAD, Stage.ABORTED, Stage.FAILED},
    Stage.DOWNLOAD: {Stage.UPLOAD, Stage.ABORTED, Stage.FAILED},
    Stage.UPLOAD: {Stage.COMPLETE, Stage.ABORTED, Stage.FAILED},
    Stage.COMPLETE: {Stage.IDLE},
    Stage.ABORTED: {Stage.IDLE},
    Stage.FAILED: {Stage.IDLE},
}

METRICS = ("ping", "download", "upload")

_STAGE_METRIC = {
    Stage.PING: "ping",
    Stage.DOWNLOAD: "download",
    Stage.UPLOAD: "upload",
}


class MetricStatus(enum.Enum):
    UNSET = "unset"
    PENDING = "pending"
    LIVE = "live"
    FINAL = "final"
    NOT_AVAILABLE = "not_available"
    ERROR = "error"


_PLACEHOLDERS = {
    MetricStatus.UNSET: "-",
    MetricStatus.PENDING: "...",
    MetricStatus.NOT_AVAILABLE: "N/A",
    MetricStatus.ERROR: "--",
}


@dataclass(frozen=True)
class MetricState:
    status: MetricStatus = MetricStatus.UNSET
    value: Optional[float] = None
    degraded: bool = False

    @property
    def has_value(self) -> bool:
        return self.status in (MetricStatus.LIVE, MetricStatus.FINAL)

    def display(self) -> str:
        if self.has_value and self.value is not None:
            return f"{self.value:.1f}"
        return _PLACEHOLDERS.get(self.status, "-")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "value": self.value,
            "degraded": self.degraded,
            "display": self.display(),
        }


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session at one instant."""

    stage: Stage = Stage.IDLE
    progress: int = 0
    status: str = ""
    ping: MetricState = field(default_factory=MetricState)
    download: MetricState = field(default_factory=MetricState)
    upload: MetricState = field(default_factory=MetricState)
    result: Optional[TestResult] = None
    error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self.stage.active

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "progress": self.progress,
            "status": self.status,
            "ping": self.ping.to_dict(),
            "download": self.download.to_dict(),
            "upload": self.upload.to_dict(),
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
        }


class TestSession:
    """State machine for a single run: Idle -> Ping -> Download -> Upload -> Complete."""

    __test__ = False

    READY = "Ready to test your speed"

    def __init__(self) -> None:
        self.stage = Stage.IDLE
        self._clear()

    def _clear(self) -> None:
        self.status = self.READY
        self.cancellation: Optional[CancellationToken] = None
        self.result: Optional[TestResult] = None
        self.error: Optional[str] = None
        self._progress = ProgressTracker()
        self._metrics: Dict[str, MetricState] = {m: MetricState() for m in METRICS}

    # -- Queries ------------------------------------------------------------

    @property
    def progress(self) -> int:
        return self._progress.value

    def metric(self, name: str) -> MetricState:
        return self._metrics[name]

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            stage=self.stage,
            progress=self.progress,
            status=self.status,
            ping=self._metrics["ping"],
            download=self._metrics["download"],
            upload=self._metrics["upload"],
            result=self.result,
            error=self.error,
        )

    # -- Transitions --------------------------------------------------------

    def _move(self, target: Stage) -> None:
        if target not in _TRANSITIONS[self.stage]:
            raise InvalidTransition(f"Cannot move from {self.stage.value} to {target.value}")
        self.stage = target

    def enter(self, stage: Stage) -> None:
        """Enter Ping, Download or Upload, resetting that stage's metric."""
        if not stage.active:
            raise InvalidTransition(f"{stage.value} is not a measurement stage")
        self._move(stage)
        self._metrics[_STAGE_METRIC[stage]] = MetricState(MetricStatus.PENDING)

    def publish(self, name: str, value: float) -> None:
        """Replace a pending or live metric with a fresher in-progress estimate."""
        if self._metrics[name].status in (MetricStatus.PENDING, MetricStatus.LIVE):
            self._metrics[name] = MetricState(MetricStatus.LIVE, value)

    def finalize(self, name: str, value: float, degraded: bool = False) -> None:
        self._metrics[name] = MetricState(MetricStatus.FINAL, value, degraded)

    def advance(self, stage_range: Tuple[float, float], stage_local: float) -> int:
        return self._progress.update(stage_range, stage_local)

    def set_status(self, status: str) -> None:
        self.status = status

    def complete(self, result: TestResult) -> None:
        self._move(Stage.COMPLETE)
        self.result = result
        self._progress.update((100, 100), 100)
        self.status = "Speed test completed successfully!"
        self.cancellation = None

    def abort(self) -> None:
        self._move(Stage.ABORTED)
        self._mark_missing(MetricStatus.NOT_AVAILABLE)
        self.status = "Test stopped safely"
        self.cancellation = None

    def fail(self, message: str) -> None:
        """Move to Failed; the stage that broke never keeps a partial value."""
        broken = _STAGE_METRIC.get(self.stage)
        self._move(Stage.FAILED)
        if broken is not None:
            self._metrics[broken] = MetricState(MetricStatus.ERROR)
        self._mark_missing(MetricStatus.ERROR)
        self.error = message
        self.status = "Connection issue detected - please try again"
        self.cancellation = None

    def reset(self) -> None:
        """Return a finished session to Idle with blank metrics."""
        self._move(Stage.IDLE)
        self._clear()

    def _mark_missing(self, status: MetricStatus) -> None:
        for name, state in self._metrics.items():
            if state.status in (MetricStatus.UNSET, MetricStatus.PENDING):
                self._metrics[name] = MetricState(status)
