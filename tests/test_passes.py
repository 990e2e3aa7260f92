"""
Unit Tests for Pass Prediction

Run with:
    python -m pytest tests/test_passes.py -v
"""

import math
import unittest
from dataclasses import replace
from datetime import timedelta

from orbit_tracker.exceptions import InvalidInput, PropagationFailure
from orbit_tracker.frames import subpoint
from orbit_tracker.models import Pass
from orbit_tracker.passes import minutes_until, next_pass, predict_passes
from orbit_tracker.propagator import Propagator
from orbit_tracker.visibility import visibility

from tle_fixtures import GEO_ELEMENTS, ISS_ELEMENTS, ISS_EPOCH

OBSERVER_LAT = 40.0
OBSERVER_LON = -75.0
MIN_ELEVATION = 10.0


def elevation_at(instant, propagator=Propagator()):
    position = subpoint(propagator.propagate(ISS_ELEMENTS, instant))
    return visibility(position, OBSERVER_LAT, OBSERVER_LON).elevation_deg


class TestPredictPasses(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.result = predict_passes(ISS_ELEMENTS, OBSERVER_LAT, OBSERVER_LON, ISS_EPOCH,
                                    horizon_hours=24.0, min_elevation_deg=MIN_ELEVATION)

    def test_finds_passes(self):
        self.assertTrue(self.result.ok)
        self.assertGreaterEqual(len(self.result), 1)
        self.assertEqual(self.result.dropped, 0)

    def test_pass_boundaries_straddle_threshold(self):
        for item in self.result:
            self.assertGreater(elevation_at(item.start_time), MIN_ELEVATION)
            self.assertLess(elevation_at(item.end_time), MIN_ELEVATION)
            if item.start_time > ISS_EPOCH:
                self.assertLessEqual(elevation_at(item.start_time - timedelta(minutes=1)),
                                     MIN_ELEVATION)

    def test_max_elevation_at_least_threshold(self):
        for item in self.result:
            self.assertGreaterEqual(item.max_elevation_deg, MIN_ELEVATION)
            self.assertLessEqual(item.max_elevation_deg, 90.0)
            self.assertTrue(item.start_time <= item.max_elevation_time <= item.end_time)
            self.assertAlmostEqual(elevation_at(item.max_elevation_time), item.max_elevation_deg,
                                   places=6)

    def test_ordered_without_overlap(self):
        passes = list(self.result)
        for earlier, later in zip(passes, passes[1:]):
            self.assertLessEqual(earlier.start_time, later.start_time)
            self.assertLessEqual(earlier.end_time, later.start_time)

    def test_durations_and_azimuths(self):
        for item in self.result:
            expected = (item.end_time - item.start_time).total_seconds() / 60.0
            self.assertAlmostEqual(item.duration_minutes, expected, places=9)
            self.assertGreater(item.duration_minutes, 0.0)
            self.assertLess(item.duration_minutes, 20.0)
            self.assertTrue(0.0 <= item.start_azimuth_deg < 360.0)
            self.assertTrue(0.0 <= item.end_azimuth_deg < 360.0)
            self.assertFalse(item.truncated)

    def test_samples_are_whole_minutes(self):
        for item in self.result:
            offset = (item.start_time - ISS_EPOCH).total_seconds()
            self.assertEqual(offset % 60.0, 0.0)

    def test_open_pass_dropped_or_truncated(self):
        longest = max(self.result, key=lambda p: p.duration_minutes)
        self.assertGreaterEqual(longest.duration_minutes, 3.0)
        earlier = [p for p in self.result if p.start_time < longest.start_time]

        start_minute = round((longest.start_time - ISS_EPOCH).total_seconds() / 60.0)
        horizon_hours = (start_minute + 2) / 60.0

        dropped = predict_passes(ISS_ELEMENTS, OBSERVER_LAT, OBSERVER_LON, ISS_EPOCH,
                                 horizon_hours=horizon_hours, min_elevation_deg=MIN_ELEVATION)
        self.assertEqual(list(dropped), earlier)

        kept = predict_passes(ISS_ELEMENTS, OBSERVER_LAT, OBSERVER_LON, ISS_EPOCH,
                              horizon_hours=horizon_hours, min_elevation_deg=MIN_ELEVATION,
                              include_open=True)
        self.assertEqual(len(kept), len(earlier) + 1)
        truncated = kept[-1]
        self.assertTrue(truncated.truncated)
        self.assertEqual(truncated.start_time, longest.start_time)
        self.assertEqual(truncated.end_time, longest.start_time + timedelta(minutes=1))

    def test_higher_threshold_gives_fewer_passes(self):
        strict = predict_passes(ISS_ELEMENTS, OBSERVER_LAT, OBSERVER_LON, ISS_EPOCH,
                                horizon_hours=24.0, min_elevation_deg=45.0)
        self.assertLessEqual(len(strict), len(self.result))
        for item in strict:
            self.assertGreaterEqual(item.max_elevation_deg, 45.0)


class TestPredictPassesFailures(unittest.TestCase):

    def test_non_finite_observer(self):
        result = predict_passes(ISS_ELEMENTS, math.nan, OBSERVER_LON, ISS_EPOCH, horizon_hours=1.0)
        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, InvalidInput)
        self.assertEqual(len(result), 0)

    def test_invalid_elements(self):
        elements = replace(ISS_ELEMENTS, eccentricity=2.0)
        result = predict_passes(elements, OBSERVER_LAT, OBSERVER_LON, ISS_EPOCH, horizon_hours=1.0)
        self.assertFalse(result.ok)
        self.assertEqual(result.error.reason, PropagationFailure.INVALID_ELEMENTS)
        self.assertEqual(list(result), [])

    def test_deep_space_with_reference_engine(self):
        result = predict_passes(GEO_ELEMENTS, 0.0, 52.0, GEO_ELEMENTS.epoch, horizon_hours=1.0,
                                propagator=Propagator(engine="reference"))
        self.assertFalse(result.ok)

    def test_non_positive_horizon(self):
        result = predict_passes(ISS_ELEMENTS, OBSERVER_LAT, OBSERVER_LON, ISS_EPOCH,
                                horizon_hours=0.0)
        self.assertFalse(result.ok)


class TestNextPass(unittest.TestCase):

    def setUp(self):
        self.first = Pass(
            start_time=ISS_EPOCH + timedelta(minutes=30),
            end_time=ISS_EPOCH + timedelta(minutes=36),
            max_elevation_deg=40.0,
            max_elevation_time=ISS_EPOCH + timedelta(minutes=33),
            start_azimuth_deg=300.0,
            end_azimuth_deg=120.0,
            duration_minutes=6.0,
        )
        self.second = replace(
            self.first,
            start_time=ISS_EPOCH + timedelta(minutes=125),
            end_time=ISS_EPOCH + timedelta(minutes=130),
            max_elevation_time=ISS_EPOCH + timedelta(minutes=127),
            duration_minutes=5.0,
        )

    def test_next_pass_before_first(self):
        self.assertIs(next_pass([self.first, self.second], ISS_EPOCH), self.first)
        self.assertAlmostEqual(minutes_until(self.first, ISS_EPOCH), 30.0)

    def test_pass_in_progress(self):
        now = ISS_EPOCH + timedelta(minutes=32)
        self.assertIs(next_pass([self.first, self.second], now), self.first)
        self.assertEqual(minutes_until(self.first, now), 0.0)

    def test_after_first_pass(self):
        now = ISS_EPOCH + timedelta(minutes=40)
        self.assertIs(next_pass([self.first, self.second], now), self.second)
        self.assertAlmostEqual(minutes_until(self.second, now), 85.0)

    def test_no_more_passes(self):
        self.assertIsNone(next_pass([self.first], ISS_EPOCH + timedelta(hours=3)))
        self.assertIsNone(next_pass([], ISS_EPOCH))


if __name__ == "__main__":
    unittest.main()
