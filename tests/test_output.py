"""Unit tests for ui.output -- JSON creation, text and CSV formatting."""

import json
import os
import tempfile
import unittest
from datetime import datetime, timezone

from engine.history import TestResult
from engine.session import Stage, TestSession
from ui.output import (
    append_csv,
    create_result_json,
    format_csv_header,
    format_csv_row,
    format_text_result,
    save_json,
)


def _result(provider="Example Net", location="Berlin"):
    return TestResult.create(
        ping_ms=12.34,
        download_mbps=95.26,
        upload_mbps=20.0,
        location=location,
        provider=provider,
        ip="203.0.113.7",
        now=datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc),
    )


def _completed_snapshot():
    session = TestSession()
    for stage, name, value in ((Stage.PING, "ping", 12.3), (Stage.DOWNLOAD, "download", 95.3),
                               (Stage.UPLOAD, "upload", 20.0)):
        session.enter(stage)
        session.finalize(name, value)
    session.complete(_result())
    return session.snapshot()


class TestCreateResultJson(unittest.TestCase):
    def test_completed(self):
        r = create_result_json(_completed_snapshot(), {"ip": "203.0.113.7"})
        self.assertEqual(r["stage"], "complete")
        self.assertEqual(r["progress"], 100)
        self.assertEqual(r["download"]["value"], 95.3)
        self.assertEqual(r["result"]["provider"], "Example Net")
        self.assertEqual(r["client"]["ip"], "203.0.113.7")
        json.dumps(r)

    def test_aborted(self):
        session = TestSession()
        session.enter(Stage.PING)
        session.abort()
        r = create_result_json(session.snapshot())
        self.assertEqual(r["stage"], "aborted")
        self.assertEqual(r["upload"]["display"], "N/A")
        self.assertNotIn("result", r)
        self.assertNotIn("client", r)

    def test_failed_includes_error(self):
        session = TestSession()
        session.enter(Stage.PING)
        session.fail("reset by peer")
        self.assertEqual(create_result_json(session.snapshot())["error"], "reset by peer")


class TestSaveJson(unittest.TestCase):
    def test_save_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "result.json")
            save_json({"ok": True}, path)
            with open(path) as fh:
                self.assertEqual(json.load(fh), {"ok": True})
            self.assertEqual(os.listdir(tmpdir), ["result.json"])

    def test_save_json_bad_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(IOError):
                save_json({}, os.path.join(tmpdir, "missing", "result.json"))


class TestTextAndCsv(unittest.TestCase):
    def test_text_result(self):
        text = format_text_result(_result())
        self.assertIn("Ping: 12.3 ms", text)
        self.assertIn("Download: 95.3 Mbps", text)
        self.assertIn("Provider: Example Net", text)

    def test_csv_row(self):
        row = format_csv_row(_result())
        fields = row.split(",")
        self.assertEqual(len(fields), len(format_csv_header().split(",")))
        self.assertEqual(fields[0], "2025-03-01T12:00:00+00:00")
        self.assertEqual(fields[-3:], ["12.3", "95.3", "20.0"])

    def test_csv_escapes_commas(self):
        row = format_csv_row(_result(provider='Example, "Net"'))
        self.assertIn('"Example, ""Net"""', row)

    def test_append_csv_writes_header_once(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "runs.csv")
            append_csv(path, _result())
            append_csv(path, _result())
            with open(path) as fh:
                lines = fh.read().splitlines()
            self.assertEqual(lines[0], format_csv_header())
            self.assertEqual(len(lines), 3)


if __name__ == "__main__":
    unittest.main()
