"""Unit tests for engine.stats -- latency aggregation and formatting."""

import math
import unittest

from engine.constants import FALLBACK_PING_MS, RTT_CEILING_MS
from engine.stats import (
    LatencyEstimate,
    ProbeSample,
    aggregate_latency,
    calculate_jitter,
    calculate_percentile,
    connection_adjustment,
    format_latency,
    format_speed,
    format_speed_value,
    iqr_bounds,
    ping_quality,
    recency_weights,
    running_estimate,
    weighted_mean,
    weighted_median,
)


def _samples(rtts, weight=1.0):
    return [ProbeSample(r, weight) for r in rtts]


class TestProbeSample(unittest.TestCase):
    def test_capped_at_ceiling(self):
        self.assertEqual(ProbeSample(5000.0).rtt_ms, RTT_CEILING_MS)

    def test_negative_becomes_zero(self):
        self.assertEqual(ProbeSample(-3.0).rtt_ms, 0.0)

    def test_nan_becomes_zero(self):
        self.assertEqual(ProbeSample(float("nan")).rtt_ms, 0.0)

    def test_weight_must_be_positive(self):
        with self.assertRaises(ValueError):
            ProbeSample(10.0, 0.0)


class TestHelpers(unittest.TestCase):
    def test_percentile_interpolates(self):
        # sorted [9, 10, 11, 11, 12, 13, 14, 300]; idx 1.75 -> 10.75
        data = [10, 12, 11, 300, 13, 9, 14, 11]
        self.assertAlmostEqual(calculate_percentile(data, 25), 10.75)
        self.assertAlmostEqual(calculate_percentile(data, 75), 13.25)

    def test_percentile_empty(self):
        self.assertEqual(calculate_percentile([], 50), 0.0)

    def test_iqr_bounds(self):
        lo, hi = iqr_bounds([10, 12, 11, 300, 13, 9, 14, 11])
        self.assertAlmostEqual(lo, 7.0)
        self.assertAlmostEqual(hi, 17.0)

    def test_iqr_lower_bound_not_negative(self):
        lo, _ = iqr_bounds([1, 2, 50, 100])
        self.assertEqual(lo, 0.0)

    def test_recency_weights(self):
        self.assertEqual(recency_weights(4), [0.25, 0.5, 0.75, 1.0])

    def test_weighted_mean(self):
        self.assertAlmostEqual(weighted_mean([10, 20], [1, 3]), 17.5)

    def test_weighted_mean_empty(self):
        self.assertEqual(weighted_mean([], []), 0.0)

    def test_weighted_median(self):
        self.assertEqual(weighted_median([10, 20, 30], [1, 1, 1]), 20)
        self.assertEqual(weighted_median([10, 20, 30], [1, 1, 5]), 30)

    def test_jitter(self):
        self.assertAlmostEqual(calculate_jitter([10.0, 15.0, 10.0, 20.0]), 20.0 / 3, places=3)
        self.assertEqual(calculate_jitter([10.0]), 0.0)


class TestConnectionAdjustment(unittest.TestCase):
    def test_mostly_fast_scales_down(self):
        self.assertEqual(connection_adjustment([5, 8, 12, 30]), 0.95)

    def test_half_fast_is_not_enough(self):
        self.assertEqual(connection_adjustment([5, 8, 30, 40]), 1.0)

    def test_many_slow_scales_up(self):
        self.assertEqual(connection_adjustment([50, 60, 200, 250, 300, 70]), 1.05)

    def test_neutral(self):
        self.assertEqual(connection_adjustment([40, 50, 60]), 1.0)

    def test_empty(self):
        self.assertEqual(connection_adjustment([]), 1.0)


class TestRunningEstimate(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(running_estimate([]), 0.0)

    def test_favours_recent_samples(self):
        # weights 0.5 and 1.0 -> (10*0.5 + 40*1.0) / 1.5 = 30
        self.assertAlmostEqual(running_estimate(_samples([10, 40])), 30.0)

    def test_source_weight_applies(self):
        samples = [ProbeSample(10, 2.0), ProbeSample(40, 1.0)]
        # weights 2*0.5=1.0 and 1*1.0=1.0 -> 25
        self.assertAlmostEqual(running_estimate(samples), 25.0)


class TestAggregateLatency(unittest.TestCase):
    def test_gross_outlier_excluded(self):
        rtts = [10, 12, 11, 300, 13, 9, 14, 11]
        weights = [1.2, 1.0, 0.9, 0.7] * 2
        samples = [ProbeSample(r, w) for r, w in zip(rtts, weights)]
        est = aggregate_latency(samples)

        self.assertNotIn(300, est.kept)
        self.assertEqual(len(est.kept), 7)
        self.assertEqual(est.adjustment, 0.95)
        self.assertGreaterEqual(est.value_ms, round(9 * 0.95, 1))
        self.assertLessEqual(est.value_ms, round(14 * 0.95, 1))
        self.assertFalse(est.degraded)

    def test_zero_samples_fallback(self):
        est = aggregate_latency([])
        self.assertEqual(est.value_ms, FALLBACK_PING_MS)
        self.assertTrue(est.degraded)
        self.assertFalse(math.isnan(est.value_ms))

    def test_two_samples_weighted_average(self):
        est = aggregate_latency([ProbeSample(10, 1.0), ProbeSample(30, 3.0)])
        self.assertAlmostEqual(est.value_ms, 25.0)
        self.assertEqual(est.adjustment, 1.0)

    def test_single_sample(self):
        self.assertAlmostEqual(aggregate_latency(_samples([42.26])).value_ms, 42.3)

    def test_rounded_to_one_decimal(self):
        est = aggregate_latency(_samples([40.123, 41.456, 42.789]))
        self.assertEqual(est.value_ms, round(est.value_ms, 1))

    def test_all_zero_rtts_not_negative(self):
        est = aggregate_latency(_samples([0, 0, 0, 0]))
        self.assertEqual(est.value_ms, 0.0)

    def test_slow_link_scaled_up(self):
        est = aggregate_latency(_samples([200, 210, 205, 190]))
        self.assertEqual(est.adjustment, 1.05)
        self.assertAlmostEqual(est.value_ms, round(201.25 * 1.05, 1))

    def test_to_dict(self):
        d = aggregate_latency(_samples([10, 11, 12])).to_dict()
        self.assertIn("value_ms", d)
        self.assertIn("kept", d)
        self.assertEqual(len(d["samples"]), 3)

    def test_default_estimate(self):
        self.assertEqual(LatencyEstimate().value_ms, FALLBACK_PING_MS)


class TestPingQuality(unittest.TestCase):
    def test_bands(self):
        self.assertEqual(ping_quality(10), "Excellent")
        self.assertEqual(ping_quality(30), "Good")
        self.assertEqual(ping_quality(80), "Average")
        self.assertEqual(ping_quality(150), "High")
        self.assertEqual(ping_quality(None), "Unknown")


class TestFormatting(unittest.TestCase):
    def test_format_speed(self):
        self.assertEqual(format_speed(50.0), "50.00 Mbps")
        self.assertEqual(format_speed(1500.0), "1.50 Gbps")

    def test_format_latency(self):
        self.assertEqual(format_latency(25.3), "25.3 ms")
        self.assertEqual(format_latency(1500.0), "1.50 s")

    def test_speed_value_buckets(self):
        self.assertEqual(format_speed_value("0.456"), "0.46")
        self.assertEqual(format_speed_value("5.43"), "5.4")
        self.assertEqual(format_speed_value("42.7"), "43")
        self.assertEqual(format_speed_value("263"), "265")
        self.assertEqual(format_speed_value("1200"), "999+")

    def test_speed_value_placeholders(self):
        for value in ("-", "N/A", "--", "..."):
            self.assertEqual(format_speed_value(value), value)

    def test_speed_value_garbage(self):
        self.assertEqual(format_speed_value("abc"), "--")
        self.assertEqual(format_speed_value("nan"), "--")


if __name__ == "__main__":
    unittest.main()
