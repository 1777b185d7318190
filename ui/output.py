"""
Output formatting -- JSON export, plain text, and CSV.
"""
from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from engine.history import TestResult
from engine.session import SessionSnapshot


def create_result_json(
    snapshot: SessionSnapshot,
    client_info: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build a JSON-serialisable dict describing a finished run."""
    result: Dict[str, Any] = {
        "stage": snapshot.stage.value,
        "status": snapshot.status,
        "progress": snapshot.progress,
        "ping": snapshot.ping.to_dict(),
        "download": snapshot.download.to_dict(),
        "upload": snapshot.upload.to_dict(),
    }
    if snapshot.result is not None:
        result["result"] = snapshot.result.to_dict()
    if snapshot.error:
        result["error"] = snapshot.error
    if client_info:
        result["client"] = client_info
    return result


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".tmp_{os.path.basename(filepath)}")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except (IOError, OSError) as exc:
        # Clean up partial temp file
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise IOError(f"Failed to save JSON to {filepath}: {exc}") from exc


# ---------------------------------------------------------------------------
# Plain-text / CSV helpers
# ---------------------------------------------------------------------------

def format_text_result(result: TestResult) -> str:
    sep = "=" * 50
    mid = "-" * 50
    return (
        f"{sep}\n"
        f"Speed Test Results\n"
        f"{sep}\n"
        f"Provider: {result.provider}\n"
        f"Location: {result.location}\n"
        f"IP: {result.ip}\n"
        f"{mid}\n"
        f"Ping: {result.ping_ms:.1f} ms\n"
        f"Download: {result.download_mbps:.1f} Mbps\n"
        f"Upload: {result.upload_mbps:.1f} Mbps\n"
        f"{sep}"
    )


def _csv_escape(value: str) -> str:
    if any(ch in value for ch in (",", '"', "\n", "\r")):
        return '"' + value.replace('"', '""') + '"'
    return value


def format_csv_header() -> str:
    return "timestamp,id,provider,location,ip,ping_ms,download_mbps,upload_mbps"


def format_csv_row(result: TestResult) -> str:
    fields = [
        result.timestamp.isoformat(),
        result.id,
        _csv_escape(result.provider),
        _csv_escape(result.location),
        _csv_escape(result.ip),
        f"{result.ping_ms:.1f}",
        f"{result.download_mbps:.1f}",
        f"{result.upload_mbps:.1f}",
    ]
    return ",".join(fields)


def append_csv(path: str, result: TestResult) -> None:
    """Append a single CSV row, writing the header if the file is new."""
    write_header = not os.path.isfile(path) or os.path.getsize(path) == 0
    with open(path, "a", encoding="utf-8") as fh:
        if write_header:
            fh.write(format_csv_header() + "\n")
        fh.write(format_csv_row(result) + "\n")
