import math
import random
import unittest

import numpy as np

from gymcounter.config import DetectorConfig, load_detector_config
from gymcounter.detector import DetectorState, Phase, RepDetector, count_reps, initial_state, step
from gymcounter.models import MotionSample


def feed(detector, rates):
    for rate in rates:
        detector.on_sample(rate)
    return detector.current_count()


class StepTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = DetectorConfig(threshold=1.0)

    def test_initial_state_is_neutral_with_zero_count(self) -> None:
        state = initial_state(self.config)
        self.assertEqual(state.phase, Phase.NEUTRAL)
        self.assertEqual(state.rep_count, 0)
        self.assertEqual(state.threshold, 1.0)
        self.assertFalse(state.is_descending)

    def test_drop_below_negative_threshold_enters_descending(self) -> None:
        state, event = step(initial_state(self.config), -1.5, self.config)
        self.assertTrue(state.is_descending)
        self.assertIsNone(event)

    def test_rise_above_threshold_completes_rep(self) -> None:
        state = DetectorState(phase=Phase.DESCENDING, threshold=1.0)
        state, event = step(state, 1.8, self.config, timestamp=0.5)
        self.assertEqual(state.phase, Phase.NEUTRAL)
        self.assertEqual(state.rep_count, 1)
        self.assertEqual(event.rep, 1)
        self.assertEqual(event.timestamp, 0.5)
        self.assertAlmostEqual(event.rate, 1.8)

    def test_rise_while_neutral_is_ignored(self) -> None:
        state, event = step(initial_state(self.config), 3.0, self.config)
        self.assertEqual(state.phase, Phase.NEUTRAL)
        self.assertEqual(state.rep_count, 0)
        self.assertIsNone(event)

    def test_exact_threshold_does_not_trigger(self) -> None:
        state, _ = step(initial_state(self.config), -1.0, self.config)
        self.assertEqual(state.phase, Phase.NEUTRAL)
        state = DetectorState(phase=Phase.DESCENDING, threshold=1.0)
        state, event = step(state, 1.0, self.config)
        self.assertTrue(state.is_descending)
        self.assertIsNone(event)

    def test_non_finite_rates_leave_state_untouched(self) -> None:
        state = DetectorState(phase=Phase.DESCENDING, threshold=1.0, rep_count=2, elapsed=1.0)
        for bad in (math.nan, math.inf, -math.inf):
            new_state, event = step(state, bad, self.config)
            self.assertIs(new_state, state)
            self.assertIsNone(event)

    def test_elapsed_advances_by_sample_interval_without_timestamps(self) -> None:
        state = initial_state(self.config)
        for _ in range(5):
            state, _ = step(state, 0.0, self.config)
        self.assertAlmostEqual(state.elapsed, 5 * 0.02)


class RepDetectorTests(unittest.TestCase):
    def test_reference_sequence(self) -> None:
        detector = RepDetector(DetectorConfig(threshold=1.0))
        detector.reset()
        detector.on_sample(-1.5, 0.005)
        detector.on_sample(-1.2, 0.010)
        detector.on_sample(1.8, 0.015)
        self.assertEqual(detector.current_count(), 1)

        detector.on_sample(-2.0, 0.020)
        detector.on_sample(0.5, 0.025)
        self.assertEqual(detector.current_count(), 1)
        self.assertTrue(detector.is_descending)

        event = detector.on_sample(1.1, 0.030)
        self.assertEqual(detector.current_count(), 2)
        self.assertEqual(event.rep, 2)

    def test_in_band_signal_never_counts(self) -> None:
        rng = random.Random(7)
        detector = RepDetector()
        rates = [rng.uniform(-1.0, 1.0) for _ in range(2000)]
        self.assertEqual(feed(detector, rates), 0)
        self.assertFalse(detector.is_descending)

    def test_full_cycle_counts_once_regardless_of_in_band_samples(self) -> None:
        detector = RepDetector()
        rates = [-2.0] + [0.3, -0.4, 0.9, -0.99] * 25 + [2.0]
        self.assertEqual(feed(detector, rates), 1)

    def test_n_cycles_count_n(self) -> None:
        detector = RepDetector()
        for n in range(1, 6):
            detector.on_sample(-2.0)
            detector.on_sample(0.0)
            detector.on_sample(2.0)
            self.assertEqual(detector.current_count(), n)

    def test_repeated_descending_triggers_count_once(self) -> None:
        detector = RepDetector()
        self.assertEqual(feed(detector, [-1.5, -3.0, -1.1, -2.2, 1.5]), 1)

    def test_repeated_rising_triggers_count_once(self) -> None:
        detector = RepDetector()
        self.assertEqual(feed(detector, [-1.5, 1.5, 2.5, 1.2, 3.0]), 1)

    def test_count_is_non_decreasing_for_random_signals(self) -> None:
        rng = random.Random(42)
        detector = RepDetector()
        last = 0
        for _ in range(5000):
            detector.on_sample(rng.uniform(-4.0, 4.0))
            count = detector.current_count()
            self.assertGreaterEqual(count, last)
            last = count
        self.assertGreater(last, 0)

    def test_reset_returns_to_neutral_zero(self) -> None:
        detector = RepDetector()
        feed(detector, [-2.0, 2.0, -2.0])
        detector.reset()
        self.assertEqual(detector.current_count(), 0)
        self.assertFalse(detector.is_descending)

    def test_on_motion_uses_configured_axis(self) -> None:
        detector = RepDetector(DetectorConfig(axis="y"))
        detector.on_motion(MotionSample.from_rates(0.02, gx=-5.0, gy=-1.5))
        detector.on_motion(MotionSample.from_rates(0.04, gx=5.0, gy=0.2))
        self.assertEqual(detector.current_count(), 0)
        detector.on_motion(MotionSample.from_rates(0.06, gx=0.0, gy=1.5))
        self.assertEqual(detector.current_count(), 1)

    def test_custom_threshold(self) -> None:
        detector = RepDetector(DetectorConfig(threshold=2.5))
        self.assertEqual(feed(detector, [-2.0, 2.0, -3.0, 2.4]), 0)
        detector.on_sample(2.6)
        self.assertEqual(detector.current_count(), 1)

    def test_manual_edits_never_go_negative(self) -> None:
        detector = RepDetector()
        self.assertEqual(detector.add_manual(), 1)
        self.assertEqual(detector.add_manual(2), 3)
        self.assertEqual(detector.remove_manual(5), 0)
        self.assertEqual(detector.add_manual(-4), 0)
        detector.add_manual(3)
        self.assertEqual(detector.clear_count(), 0)
        self.assertEqual(detector.current_count(), 0)


class OscillationPolicyTests(unittest.TestCase):
    def test_default_counts_every_traversal(self) -> None:
        detector = RepDetector(DetectorConfig())
        for t in range(6):
            detector.on_sample(-2.0 if t % 2 == 0 else 2.0, timestamp=t * 0.05)
        self.assertEqual(detector.current_count(), 3)

    def test_min_rep_interval_suppresses_fast_oscillation(self) -> None:
        detector = RepDetector(DetectorConfig(min_rep_interval=0.5))
        detector.on_sample(-2.0, 0.0)
        detector.on_sample(2.0, 0.1)
        self.assertEqual(detector.current_count(), 1)

        detector.on_sample(-2.0, 0.2)
        event = detector.on_sample(2.0, 0.3)
        self.assertIsNone(event)
        self.assertEqual(detector.current_count(), 1)
        self.assertFalse(detector.is_descending)

        detector.on_sample(-2.0, 0.7)
        detector.on_sample(2.0, 0.8)
        self.assertEqual(detector.current_count(), 2)

    def test_min_rep_interval_uses_sample_clock_without_timestamps(self) -> None:
        # 50 Hz: 10 samples = 0.2 s
        detector = RepDetector(DetectorConfig(min_rep_interval=0.3))
        feed(detector, [-2.0, 2.0])
        feed(detector, [-2.0] + [0.0] * 8 + [2.0])
        self.assertEqual(detector.current_count(), 1)
        feed(detector, [-2.0] + [0.0] * 20 + [2.0])
        self.assertEqual(detector.current_count(), 2)


class CountRepsTests(unittest.TestCase):
    def test_counts_numpy_series(self) -> None:
        t = np.arange(0, 5, 0.02)
        rates = -2.0 * np.sin(2 * np.pi * 1.0 * t)
        self.assertEqual(count_reps(rates), 5)

    def test_timestamps_must_match_length(self) -> None:
        with self.assertRaises(ValueError):
            count_reps([1.0, 2.0], timestamps=[0.0])

    def test_array_count_matches_streaming_detector(self) -> None:
        rng = np.random.default_rng(3)
        rates = rng.uniform(-3.0, 3.0, size=3000)
        rates[::97] = np.nan
        rates[::131] = np.inf
        rates[::173] = -np.inf

        detector = RepDetector()
        self.assertEqual(count_reps(rates), feed(detector, rates.tolist()))

    def test_empty_and_in_band_series(self) -> None:
        self.assertEqual(count_reps([]), 0)
        self.assertEqual(count_reps([0.5, -0.9, 1.0, -1.0]), 0)
        self.assertEqual(count_reps([2.0, 2.0, -2.0]), 0)

    def test_min_rep_interval_applies_to_batch_counts(self) -> None:
        config = DetectorConfig(min_rep_interval=0.5)
        rates = [-2.0, 2.0, -2.0, 2.0, -2.0, 2.0]
        timestamps = [0.0, 0.1, 0.2, 0.3, 0.7, 0.8]
        self.assertEqual(count_reps(rates, config, timestamps), 2)
        self.assertEqual(count_reps(rates), 3)


class DetectorConfigTests(unittest.TestCase):
    def test_rejects_invalid_values(self) -> None:
        with self.assertRaises(ValueError):
            DetectorConfig(threshold=0)
        with self.assertRaises(ValueError):
            DetectorConfig(axis="w")
        with self.assertRaises(ValueError):
            DetectorConfig(min_rep_interval=-1)
        with self.assertRaises(ValueError):
            DetectorConfig(sample_rate_hz=0)

    def test_sample_interval(self) -> None:
        self.assertAlmostEqual(DetectorConfig().sample_interval, 0.02)

    def test_load_detector_config_applies_overrides(self) -> None:
        config = load_detector_config(threshold=2.0, axis="z", min_rep_interval=None)
        self.assertEqual(config.threshold, 2.0)
        self.assertEqual(config.axis, "z")
        self.assertGreaterEqual(config.min_rep_interval, 0.0)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
