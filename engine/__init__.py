"""Speed test engine -- probes, aggregation, orchestration and history."""

from .cancel import CancellationToken
from .config import EngineConfig, load_config
from .download import DownloadTester
from .errors import (
    ConfigError,
    InvalidTransition,
    PersistenceCorrupt,
    ProbeError,
    ProbeTimeout,
    ProbeTransportError,
    RunInProgress,
    SpeedCheckError,
    StageCancelled,
    StageTransportError,
)
from .geo import ClientInfo, ClientLocator
from .history import HistoryStore, JsonFileStore, MemoryStore, TestResult
from .latency import LatencyTester
from .orchestrator import SpeedTestEngine
from .probes import PingEndpoint, ProbeOutcome, SampleSource, TransferSnapshot
from .progress import ProgressTracker, eased_percent, overall
from .session import MetricState, MetricStatus, SessionSnapshot, Stage, TestSession
from .stats import (
    LatencyEstimate,
    ProbeSample,
    aggregate_latency,
    format_latency,
    format_speed,
    format_speed_value,
    running_estimate,
)
from .throughput import ThroughputResult, ThroughputSampler
from .upload import UploadTester

__all__ = [
    "CancellationToken",
    "ClientInfo",
    "ClientLocator",
    "ConfigError",
    "DownloadTester",
    "EngineConfig",
    "HistoryStore",
    "InvalidTransition",
    "JsonFileStore",
    "LatencyEstimate",
    "LatencyTester",
    "MemoryStore",
    "MetricState",
    "MetricStatus",
    "PersistenceCorrupt",
    "PingEndpoint",
    "ProbeError",
    "ProbeOutcome",
    "ProbeSample",
    "ProbeTimeout",
    "ProbeTransportError",
    "ProgressTracker",
    "RunInProgress",
    "SampleSource",
    "SessionSnapshot",
    "SpeedCheckError",
    "SpeedTestEngine",
    "Stage",
    "StageCancelled",
    "StageTransportError",
    "TestResult",
    "TestSession",
    "ThroughputResult",
    "ThroughputSampler",
    "TransferSnapshot",
    "UploadTester",
    "aggregate_latency",
    "eased_percent",
    "format_latency",
    "format_speed",
    "format_speed_value",
    "load_config",
    "overall",
    "running_estimate",
]
