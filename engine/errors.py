"""Exception hierarchy for the measurement engine."""
from __future__ import annotations


class SpeedCheckError(Exception):
    """Base class for every error raised by the engine."""


class ProbeError(SpeedCheckError):
    """A single latency probe attempt failed.  Recovered locally."""


class ProbeTimeout(ProbeError):
    pass


class ProbeTransportError(ProbeError):
    pass


class StageCancelled(SpeedCheckError):
    """The run's cancellation token fired.  Terminal, but not a failure."""


class StageTransportError(SpeedCheckError):
    """A download or upload connection failed.  Terminal for the run."""


class PersistenceCorrupt(SpeedCheckError):
    """Stored history could not be parsed."""


class RunInProgress(SpeedCheckError):
    """``start_test()`` was called while another run is active."""


class ConfigError(SpeedCheckError, ValueError):
    """A configuration value is out of range or of the wrong type."""


class InvalidTransition(SpeedCheckError):
    """A session was asked to move between two unconnected stages."""
