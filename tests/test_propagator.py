"""
Unit Tests for Propagation

Checks both engines against physical expectations and against each other.

Run with:
    python -m pytest tests/test_propagator.py -v
"""

import math
import unittest
from dataclasses import replace
from datetime import timedelta

from config import EARTH_RADIUS_KM
from orbit_tracker.exceptions import PropagationError, PropagationFailure
from orbit_tracker.models import OrbitClass, classify_orbit
from orbit_tracker.propagator import Propagator, minutes_since_epoch, validate_elements
from orbit_tracker.sgp4_reference import NearEarthSGP4
from orbit_tracker.tle_parser import parse_tle

from tle_fixtures import (
    DECAYED_LINE1,
    DECAYED_LINE2,
    GEO_ELEMENTS,
    GEO_EPOCH,
    ISS_ELEMENTS,
    ISS_EPOCH,
    VANGUARD_LINE1,
    VANGUARD_LINE2,
)


def distance(a, b):
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


class TestLibraryEngine(unittest.TestCase):
    """Default engine backed by the sgp4 library."""

    def setUp(self):
        self.propagator = Propagator()

    def test_iss_at_epoch_radius_plausible(self):
        state = self.propagator.propagate(ISS_ELEMENTS, ISS_EPOCH)
        self.assertGreater(state.radius_km, EARTH_RADIUS_KM + 100.0)
        self.assertLess(state.radius_km, EARTH_RADIUS_KM + 50000.0)
        self.assertAlmostEqual(state.speed_kms, 7.66, delta=0.05)

    def test_iss_altitude_and_class(self):
        position = self.propagator.propagate_geodetic(ISS_ELEMENTS, ISS_EPOCH)
        self.assertGreaterEqual(position.altitude_km, 400.0)
        self.assertLessEqual(position.altitude_km, 430.0)
        self.assertEqual(classify_orbit(position.altitude_km), OrbitClass.LEO)
        self.assertLessEqual(abs(position.latitude_deg), 52.0)

    def test_geo_altitude_and_class(self):
        position = self.propagator.propagate_geodetic(GEO_ELEMENTS, GEO_EPOCH)
        self.assertAlmostEqual(position.altitude_km, 35786.0, delta=100.0)
        self.assertEqual(classify_orbit(position.altitude_km), OrbitClass.GEO)
        self.assertLess(abs(position.latitude_deg), 0.5)

    def test_vanguard_eccentric_orbit(self):
        elements = parse_tle(VANGUARD_LINE1, VANGUARD_LINE2)
        state = self.propagator.propagate(elements, elements.epoch + timedelta(hours=6))
        self.assertGreater(state.radius_km, EARTH_RADIUS_KM + 100.0)
        self.assertLess(state.radius_km, EARTH_RADIUS_KM + 5000.0)

    def test_idempotent(self):
        instant = ISS_EPOCH + timedelta(minutes=137.25)
        first = self.propagator.propagate(ISS_ELEMENTS, instant)
        second = self.propagator.propagate(ISS_ELEMENTS, instant)
        fresh = Propagator().propagate(ISS_ELEMENTS, instant)
        self.assertEqual(first, second)
        self.assertEqual(first, fresh)

    def test_cache_does_not_change_results(self):
        instant = ISS_EPOCH + timedelta(hours=3)
        before = self.propagator.propagate(ISS_ELEMENTS, instant)
        self.propagator.clear_cache()
        after = self.propagator.propagate(ISS_ELEMENTS, instant)
        self.assertEqual(before, after)

    def test_naive_instant_is_utc(self):
        aware = self.propagator.propagate(ISS_ELEMENTS, ISS_EPOCH)
        naive = self.propagator.propagate(ISS_ELEMENTS, ISS_EPOCH.replace(tzinfo=None))
        self.assertEqual(aware.position, naive.position)

    def test_decayed_elements_rejected(self):
        elements = parse_tle(DECAYED_LINE1, DECAYED_LINE2)
        with self.assertRaises(PropagationError) as ctx:
            self.propagator.propagate(elements, elements.epoch)
        self.assertEqual(ctx.exception.reason, PropagationFailure.DECAYED)
        self.assertEqual(ctx.exception.catalog_number, 99001)

    def test_impossible_eccentricity_rejected(self):
        elements = replace(ISS_ELEMENTS, eccentricity=1.2)
        with self.assertRaises(PropagationError) as ctx:
            self.propagator.propagate(elements, ISS_EPOCH)
        self.assertEqual(ctx.exception.reason, PropagationFailure.INVALID_ELEMENTS)

    def test_zero_mean_motion_rejected(self):
        elements = replace(ISS_ELEMENTS, mean_motion=0.0)
        with self.assertRaises(PropagationError) as ctx:
            validate_elements(elements)
        self.assertEqual(ctx.exception.reason, PropagationFailure.INVALID_ELEMENTS)

    def test_unknown_engine(self):
        with self.assertRaises(ValueError):
            Propagator(engine="numerical")


class TestReferenceEngine(unittest.TestCase):
    """Native near-Earth SGP4."""

    def setUp(self):
        self.reference = Propagator(engine="reference")
        self.library = Propagator(engine="sgp4")

    def test_matches_library_near_epoch(self):
        for minutes in (0.0, 45.0, 90.0, 720.0):
            instant = ISS_EPOCH + timedelta(minutes=minutes)
            ours = self.reference.propagate(ISS_ELEMENTS, instant)
            theirs = self.library.propagate(ISS_ELEMENTS, instant)
            self.assertLess(distance(ours.position, theirs.position), 1.0,
                            f"position differs at t={minutes} min")
            self.assertLess(distance(ours.velocity, theirs.velocity), 1.0e-3,
                            f"velocity differs at t={minutes} min")

    def test_matches_library_for_eccentric_orbit(self):
        elements = parse_tle(VANGUARD_LINE1, VANGUARD_LINE2)
        for minutes in (0.0, 360.0, 1440.0):
            instant = elements.epoch + timedelta(minutes=minutes)
            ours = self.reference.propagate(elements, instant)
            theirs = self.library.propagate(elements, instant)
            self.assertLess(distance(ours.position, theirs.position), 1.0)

    def test_deep_space_rejected(self):
        with self.assertRaises(PropagationError) as ctx:
            self.reference.propagate(GEO_ELEMENTS, GEO_EPOCH)
        self.assertEqual(ctx.exception.reason, PropagationFailure.INVALID_ELEMENTS)

    def test_direct_model_is_pure(self):
        model = NearEarthSGP4(ISS_ELEMENTS)
        self.assertEqual(model.propagate(30.0), model.propagate(30.0))


class TestEpochOffsets(unittest.TestCase):

    def test_minutes_since_epoch(self):
        instant = ISS_EPOCH + timedelta(hours=2, seconds=30)
        self.assertAlmostEqual(minutes_since_epoch(ISS_ELEMENTS, instant), 120.5, places=9)

    def test_before_epoch_is_negative(self):
        instant = ISS_EPOCH - timedelta(minutes=10)
        self.assertAlmostEqual(minutes_since_epoch(ISS_ELEMENTS, instant), -10.0, places=9)


if __name__ == "__main__":
    unittest.main()
