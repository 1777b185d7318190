"""
Test history persistence.

Results live in a key-value store as one JSON list, most recent first,
capped at ``HISTORY_LIMIT`` entries.  Every entry read back is repaired to
the :class:`TestResult` invariants (clamped numbers, no "Unknown"
placeholders, an id and a timestamp) and the repaired list is written back
straight away, so loading twice is a no-op.
"""
from __future__ import annotations

import json
import logging
import math
import os
import random
import string
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .constants import (
    DEFAULT_HISTORY_DOWNLOAD,
    DEFAULT_HISTORY_PING,
    DEFAULT_HISTORY_UPLOAD,
    DEFAULT_IP,
    DEFAULT_LOCATION,
    DEFAULT_PROVIDER,
    HISTORY_KEY,
    HISTORY_LIMIT,
    MAX_PING_MS,
    MIN_PING_MS,
    MIN_SPEED_MBPS,
)
from .errors import PersistenceCorrupt

logger = logging.getLogger(__name__)

_DEFAULT_DIR = os.path.join(Path.home(), ".speedcheck")

_SENTINELS = {"", "unknown", "unknown isp", "unknown, unknown", "loading...", "detecting..."}


# ---------------------------------------------------------------------------
# Repair helpers
# ---------------------------------------------------------------------------

def new_result_id(now: Optional[datetime] = None) -> str:
    """Millisecond timestamp followed by a short random suffix."""
    now = now or datetime.now(timezone.utc)
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"{int(now.timestamp() * 1000)}{suffix}"


def _positive_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
    )


def clamp_ping(value: Any) -> float:
    if not _positive_number(value):
        return DEFAULT_HISTORY_PING
    return float(min(max(value, MIN_PING_MS), MAX_PING_MS))


def clamp_speed(value: Any, default: float) -> float:
    if not _positive_number(value):
        return default
    return float(max(value, MIN_SPEED_MBPS))


def measured_ping(value: Any) -> float:
    """Clamp a fresh measurement into range; only non-numbers get the default."""
    if not isinstance(value, (int, float)) or isinstance(value, bool) or not math.isfinite(value):
        return DEFAULT_HISTORY_PING
    return float(min(max(value, MIN_PING_MS), MAX_PING_MS))


def encodable(text: str) -> str:
    """Replace characters that cannot be written as UTF-8 (lone surrogates)."""
    return text.encode("utf-8", errors="replace").decode("utf-8")


def clean_text(value: Any, default: str) -> str:
    """Replace empty and "Unknown"-style placeholders with *default*."""
    if not isinstance(value, str) or value.strip().lower() in _SENTINELS:
        return default
    return encodable(value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str) and value:
        try:
            ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


# ---------------------------------------------------------------------------
# Result record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TestResult:
    """One completed run, stored already clamped and with display defaults."""

    __test__ = False

    id: str
    ping_ms: float
    download_mbps: float
    upload_mbps: float
    location: str
    provider: str
    ip: str
    timestamp: datetime

    @classmethod
    def create(
        cls,
        ping_ms: float,
        download_mbps: float,
        upload_mbps: float,
        location: str = "",
        provider: str = "",
        ip: str = "",
        now: Optional[datetime] = None,
    ) -> TestResult:
        now = now or datetime.now(timezone.utc)
        return cls(
            id=new_result_id(now),
            ping_ms=measured_ping(ping_ms),
            download_mbps=clamp_speed(download_mbps, MIN_SPEED_MBPS),
            upload_mbps=clamp_speed(upload_mbps, MIN_SPEED_MBPS),
            location=clean_text(location, DEFAULT_LOCATION),
            provider=clean_text(provider, DEFAULT_PROVIDER),
            ip=clean_text(ip, DEFAULT_IP),
            timestamp=now,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], now: Optional[datetime] = None) -> TestResult:
        """Build a result from a persisted record, repairing it on the way."""
        ts = parse_timestamp(data.get("timestamp")) or now or datetime.now(timezone.utc)
        raw_id = data.get("id")
        return cls(
            id=encodable(str(raw_id)) if raw_id not in (None, "") else new_result_id(ts),
            ping_ms=clamp_ping(data.get("ping")),
            download_mbps=clamp_speed(data.get("download"), DEFAULT_HISTORY_DOWNLOAD),
            upload_mbps=clamp_speed(data.get("upload"), DEFAULT_HISTORY_UPLOAD),
            location=clean_text(data.get("location"), DEFAULT_LOCATION),
            provider=clean_text(data.get("provider"), DEFAULT_PROVIDER),
            ip=clean_text(data.get("ip"), DEFAULT_IP),
            timestamp=ts,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ping": self.ping_ms,
            "download": self.download_mbps,
            "upload": self.upload_mbps,
            "location": self.location,
            "provider": self.provider,
            "ip": self.ip,
            "timestamp": self.timestamp.isoformat(),
        }


# ---------------------------------------------------------------------------
# Key-value stores
# ---------------------------------------------------------------------------

class MemoryStore:
    """Dict-backed store, for tests and throwaway engines."""

    def __init__(self, data: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore:
    """One ``<key>.json`` file per key under *directory*."""

    def __init__(self, directory: str = _DEFAULT_DIR) -> None:
        self.directory = directory

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, encoding="utf-8") as fh:
                return fh.read()
        except UnicodeDecodeError as exc:
            raise PersistenceCorrupt(f"{path} is not valid UTF-8: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        """Write atomically (write-tmp then rename)."""
        os.makedirs(self.directory, exist_ok=True)
        path = self._path(key)
        tmp = os.path.join(self.directory, f".tmp_{key}.json")
        try:
            with open(tmp, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.replace(tmp, path)
        finally:
            if os.path.exists(tmp):
                os.unlink(tmp)

    def remove(self, key: str) -> None:
        path = self._path(key)
        if os.path.isfile(path):
            os.remove(path)


# ---------------------------------------------------------------------------
# History store
# ---------------------------------------------------------------------------

def decode_history(raw: str) -> List[Any]:
    try:
        items = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise PersistenceCorrupt(f"History is not valid JSON: {exc}") from exc
    if not isinstance(items, list):
        raise PersistenceCorrupt(f"History must be a list, got {type(items).__name__}")
    return items


class HistoryStore:
    """
    Capped, most-recent-first list of :class:`TestResult`.

    The engine's orchestrator is the only writer.  Readers call
    :meth:`snapshot` and get an immutable tuple that is swapped wholesale on
    every change, so they never observe a half-applied update.
    """

    def __init__(self, store, key: str = HISTORY_KEY, limit: int = HISTORY_LIMIT) -> None:  # noqa: ANN001
        self._store = store
        self.key = key
        self.limit = limit
        self._lock = threading.Lock()
        self._entries: Tuple[TestResult, ...] = ()

    def load(self) -> Tuple[TestResult, ...]:
        """Read, repair and write back the persisted history."""
        entries: Tuple[TestResult, ...] = ()

        try:
            raw = self._store.get(self.key)
            items = decode_history(raw) if raw is not None else None
        except PersistenceCorrupt as exc:
            logger.warning("Discarding unreadable history: %s", exc)
            self._store.remove(self.key)
        else:
            if items is not None:
                repaired = [TestResult.from_dict(i) for i in items if isinstance(i, dict)]
                entries = tuple(repaired[: self.limit])
                self._write(entries)

        with self._lock:
            self._entries = entries
        logger.debug("Loaded %d history entries", len(entries))
        return entries

    def snapshot(self) -> Tuple[TestResult, ...]:
        with self._lock:
            return self._entries

    def append(self, result: TestResult) -> Tuple[TestResult, ...]:
        """Prepend *result*, evicting the oldest entries beyond the cap."""
        with self._lock:
            entries = ((result,) + self._entries)[: self.limit]
            self._entries = entries
        self._write(entries)
        return entries

    def clear(self) -> None:
        with self._lock:
            self._entries = ()
        self._store.remove(self.key)

    def _write(self, entries: Sequence[TestResult]) -> None:
        self._store.set(self.key, json.dumps([e.to_dict() for e in entries], ensure_ascii=False))
