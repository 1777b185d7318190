"""Tests for engine.throughput and the download / upload testers."""

import unittest

from engine.cancel import CancellationToken
from engine.download import DownloadTester, download_status
from engine.errors import StageCancelled
from engine.probes import TransferSnapshot
from engine.throughput import ThroughputSampler, instantaneous_mbps
from engine.upload import UploadTester, upload_status

MIB = 2 ** 20


class FakeStream:
    """Async iterator over canned snapshots that records whether it was closed."""

    def __init__(self, snapshots, error=None):
        self._snapshots = list(snapshots)
        self._error = error
        self.closed = False
        self.consumed = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.consumed < len(self._snapshots):
            snap = self._snapshots[self.consumed]
            self.consumed += 1
            return snap
        if self._error is not None:
            raise self._error
        raise StopAsyncIteration

    async def aclose(self):
        self.closed = True


class FakeTransferSource:
    def __init__(self, snapshots):
        self.snapshots = snapshots
        self.calls = []

    def download(self, url, duration, token):
        self.calls.append(("download", url, duration))
        return FakeStream(self.snapshots)

    def upload(self, url, duration, token):
        self.calls.append(("upload", url, duration))
        return FakeStream(self.snapshots)


class TestInstantaneousMbps(unittest.TestCase):
    def test_formula(self):
        # 1 MiB in 100 ms -> 10 MiB/s -> 80 Mbit/s
        self.assertAlmostEqual(instantaneous_mbps(MIB, 100.0), 80.0)

    def test_zero_elapsed(self):
        self.assertIsNone(instantaneous_mbps(1000, 0.0))
        self.assertIsNone(instantaneous_mbps(1000, 0.5))


class TestThroughputSampler(unittest.IsolatedAsyncioTestCase):
    async def test_complete_stream(self):
        snaps = [TransferSnapshot(i * MIB, i * 100.0) for i in range(1, 6)]
        result = await ThroughputSampler(duration_seconds=1.0).run(FakeStream(snaps))

        self.assertTrue(result.completed)
        self.assertEqual(result.speed_mbps, 80.0)
        self.assertEqual(result.bytes_total, 5 * MIB)
        self.assertEqual(result.duration_ms, 500.0)

    async def test_budget_stops_and_closes_stream(self):
        snaps = [TransferSnapshot(i * MIB, i * 250.0) for i in range(1, 9)]
        stream = FakeStream(snaps)
        result = await ThroughputSampler(duration_seconds=1.0).run(stream)

        self.assertFalse(result.completed)
        self.assertTrue(stream.closed)
        self.assertEqual(stream.consumed, 4)
        self.assertEqual(result.duration_ms, 1000.0)

    async def test_publish_interval(self):
        snaps = [TransferSnapshot(i * 1000, i * 40.0) for i in range(1, 11)]
        sampler = ThroughputSampler(duration_seconds=10.0, interval_ms=80.0)
        calls = []
        sampler.on_progress = lambda pct, mbps: calls.append((pct, mbps))

        await sampler.run(FakeStream(snaps))

        self.assertEqual(len(calls), 5)
        pcts = [c[0] for c in calls]
        self.assertEqual(pcts, sorted(pcts))

    async def test_zero_elapsed_gives_zero_speed(self):
        result = await ThroughputSampler(duration_seconds=1.0).run(
            FakeStream([TransferSnapshot(5000, 0.0)])
        )
        self.assertEqual(result.speed_mbps, 0.0)

    async def test_empty_stream(self):
        result = await ThroughputSampler(duration_seconds=1.0).run(FakeStream([]))
        self.assertEqual(result.speed_mbps, 0.0)
        self.assertTrue(result.completed)

    async def test_cancellation_propagates_and_closes(self):
        stream = FakeStream([TransferSnapshot(MIB, 100.0)], error=StageCancelled("stop"))
        with self.assertRaises(StageCancelled):
            await ThroughputSampler(duration_seconds=10.0).run(stream)
        self.assertTrue(stream.closed)


class TestTesters(unittest.IsolatedAsyncioTestCase):
    async def test_download_tester(self):
        source = FakeTransferSource([TransferSnapshot(MIB, 100.0), TransferSnapshot(2 * MIB, 200.0)])
        tester = DownloadTester(source, url="http://dl.example", duration_seconds=2.0)
        updates = []
        tester.on_progress = lambda pct, mbps: updates.append(mbps)

        result = await tester.test(CancellationToken())

        self.assertEqual(source.calls, [("download", "http://dl.example", 2.0)])
        self.assertEqual(result.speed_mbps, 80.0)
        self.assertTrue(updates)

    async def test_upload_tester(self):
        source = FakeTransferSource([TransferSnapshot(MIB, 400.0)])
        tester = UploadTester(source, url="http://ul.example", duration_seconds=1.0)
        result = await tester.test(CancellationToken())

        self.assertEqual(source.calls[0][0], "upload")
        self.assertEqual(result.speed_mbps, 20.0)

    def test_status_messages(self):
        self.assertIn("Excellent", download_status(80))
        self.assertIn("Measuring", download_status(5))
        self.assertIn("Great", upload_status(25))
        self.assertIn("Measuring", upload_status(2))


if __name__ == "__main__":
    unittest.main()
