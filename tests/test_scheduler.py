"""
Unit Tests for the Position Ticker and Selection Tracker

Batches run on real thread pools; a gated propagator holds a batch in flight
so deferral and generation checks can be observed deterministically.

Run with:
    python -m pytest tests/test_scheduler.py -v
"""

import threading
import unittest
from concurrent.futures import ThreadPoolExecutor

from orbit_tracker.catalog import Catalog, build_tracked_object
from orbit_tracker.exceptions import InvalidInput
from orbit_tracker.models import Category, ObserverLocation, OrbitClass
from orbit_tracker.propagator import Propagator
from orbit_tracker.scheduler import PositionTicker, SelectionTracker, propagate_batch

from tle_fixtures import (
    DECAYED_LINE1,
    DECAYED_LINE2,
    GEO_LINE1,
    GEO_LINE2,
    ISS_EPOCH,
    days,
    iss_like_lines,
    iss_record,
    record,
)

TIMEOUT_S = 30.0


class GatedPropagator(Propagator):
    """Blocks every propagation until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def propagate(self, elements, instant):
        self.entered.set()
        if not self.release.wait(TIMEOUT_S):
            raise RuntimeError("gate never released")
        return super().propagate(elements, instant)


def loaded_catalog():
    catalog = Catalog()
    catalog.ingest([iss_record()], now=ISS_EPOCH)
    return catalog


class TestPropagateBatch(unittest.TestCase):

    def test_failures_are_excluded_and_counted(self):
        objects = [
            build_tracked_object(iss_record()),
            build_tracked_object(record("DEAD SAT", DECAYED_LINE1, DECAYED_LINE2)),
            build_tracked_object(record("GEO SAT", GEO_LINE1, GEO_LINE2)),
        ]
        result = propagate_batch(objects, ISS_EPOCH, generation=3)

        self.assertEqual(result.generation, 3)
        self.assertEqual(result.count, 2)
        self.assertEqual(result.failures, 1)
        self.assertEqual(result.failed_ids, (99001,))

        by_id = {entry.catalog_id: entry for entry in result.entries}
        self.assertEqual(by_id[25544].orbit_class, OrbitClass.LEO)
        self.assertEqual(by_id[25544].category, Category.STATION)
        self.assertEqual(by_id[28884].orbit_class, OrbitClass.GEO)

    def test_empty_batch(self):
        result = propagate_batch([], ISS_EPOCH)
        self.assertEqual(result.count, 0)
        self.assertEqual(result.failures, 0)


class TestPositionTicker(unittest.TestCase):

    def setUp(self):
        self.catalog = loaded_catalog()
        self.snapshots = []
        self.second_snapshot = threading.Event()
        self.tickers = []

    def tearDown(self):
        for ticker in self.tickers:
            ticker.stop()

    def on_snapshot(self, result):
        self.snapshots.append(result)
        if len(self.snapshots) >= 2:
            self.second_snapshot.set()

    def make_ticker(self, **kwargs):
        kwargs.setdefault("clock", lambda: ISS_EPOCH)
        ticker = PositionTicker(self.catalog, self.on_snapshot, **kwargs)
        self.tickers.append(ticker)
        return ticker

    def test_interval_bounds(self):
        for interval in (499, 5001, 0):
            with self.assertRaises(InvalidInput):
                PositionTicker(self.catalog, self.on_snapshot, interval_ms=interval)

    def test_tick_publishes_snapshot(self):
        ticker = self.make_ticker()
        result = ticker.tick_now().result(timeout=TIMEOUT_S)

        self.assertEqual(result.count, 1)
        self.assertEqual(result.instant, ISS_EPOCH)
        self.assertEqual(result.generation, self.catalog.generation)
        self.assertIs(ticker.latest, result)
        self.assertEqual(self.snapshots, [result])
        self.assertEqual(ticker.published, 1)

    def test_due_ticks_deferred_and_coalesced(self):
        gate = GatedPropagator()
        ticker = self.make_ticker(propagator=gate)

        first = ticker.tick_now()
        self.assertTrue(gate.entered.wait(TIMEOUT_S))
        self.assertTrue(ticker.busy)
        self.assertIsNone(ticker.tick_now())
        self.assertIsNone(ticker.tick_now())
        self.assertEqual(ticker.deferred, 2)

        gate.release.set()
        self.assertIsNotNone(first.result(timeout=TIMEOUT_S))
        self.assertTrue(self.second_snapshot.wait(TIMEOUT_S))

        ticker.stop(wait=True)
        self.assertEqual(ticker.published, 2)
        self.assertEqual(len(self.snapshots), 2)

    def test_superseded_generation_discarded(self):
        gate = GatedPropagator()
        ticker = self.make_ticker(propagator=gate)

        future = ticker.tick_now()
        self.assertTrue(gate.entered.wait(TIMEOUT_S))
        _, objects = self.catalog.snapshot()
        self.catalog.replace(objects)
        gate.release.set()

        self.assertIsNone(future.result(timeout=TIMEOUT_S))
        self.assertEqual(ticker.discarded, 1)
        self.assertEqual(ticker.published, 0)
        self.assertEqual(self.snapshots, [])

        # the next tick sees the new generation
        result = ticker.tick_now().result(timeout=TIMEOUT_S)
        self.assertEqual(result.generation, self.catalog.generation)

    def test_consumer_errors_do_not_stop_ticker(self):
        def broken(result):
            raise ValueError("renderer went away")

        ticker = PositionTicker(self.catalog, broken, clock=lambda: ISS_EPOCH)
        self.tickers.append(ticker)
        self.assertIsNotNone(ticker.tick_now().result(timeout=TIMEOUT_S))
        self.assertFalse(ticker.busy)
        self.assertIsNotNone(ticker.tick_now().result(timeout=TIMEOUT_S))
        self.assertEqual(ticker.published, 2)

    def test_timer_drives_ticks(self):
        ticker = self.make_ticker(interval_ms=500)
        ticker.start()
        self.assertTrue(self.second_snapshot.wait(TIMEOUT_S))
        ticker.stop()
        self.assertIsNone(ticker.tick_now())

    def test_shared_executor_left_running(self):
        with ThreadPoolExecutor(max_workers=2) as executor:
            ticker = PositionTicker(self.catalog, self.on_snapshot, executor=executor,
                                    clock=lambda: ISS_EPOCH)
            ticker.tick_now().result(timeout=TIMEOUT_S)
            ticker.stop()
            self.assertEqual(executor.submit(lambda: 42).result(timeout=TIMEOUT_S), 42)


class TestSelectionTracker(unittest.TestCase):

    def setUp(self):
        self.catalog = loaded_catalog()
        self.updates = []
        self.tracker = SelectionTracker(self.catalog, self.updates.append,
                                        clock=lambda: ISS_EPOCH)

    def tearDown(self):
        self.tracker.stop()

    def test_select_computes_ground_track_only(self):
        update = self.tracker.select(25544).result(timeout=TIMEOUT_S)

        self.assertEqual(update.catalog_id, 25544)
        self.assertTrue(update.ground_track.ok)
        self.assertEqual(len(update.ground_track), 91)
        self.assertIsNone(update.passes)
        self.assertIsNone(update.next_pass)
        self.assertIs(self.tracker.latest, update)

    def test_observer_adds_passes(self):
        self.tracker.select(25544).result(timeout=TIMEOUT_S)
        observer = ObserverLocation(40.0, -75.0)
        update = self.tracker.set_observer(observer).result(timeout=TIMEOUT_S)

        self.assertIsNotNone(update.passes)
        self.assertTrue(update.passes.ok)
        if len(update.passes):
            self.assertIs(update.next_pass, update.passes[0])
        self.assertEqual(len(self.updates), 2)

    def test_unknown_selection(self):
        self.assertIsNone(self.tracker.select(12345))
        self.assertIsNone(self.tracker.selected)
        self.assertIsNone(self.tracker.refresh())

    def test_clearing_selection(self):
        self.tracker.select(25544).result(timeout=TIMEOUT_S)
        self.assertIsNone(self.tracker.select(None))
        self.assertIsNone(self.tracker.latest)

    def test_refresh_follows_fresher_elements(self):
        self.catalog.ingest([record("TEST SAT", *iss_like_lines(90001, epoch=ISS_EPOCH))],
                            now=ISS_EPOCH)
        self.tracker.select(90001).result(timeout=TIMEOUT_S)

        newer = ISS_EPOCH + days(1)
        self.catalog.ingest([record("TEST SAT", *iss_like_lines(90001, epoch=newer))], now=newer)
        update = self.tracker.refresh().result(timeout=TIMEOUT_S)

        self.assertIsNotNone(update)
        self.assertEqual(self.tracker.selected.elements, self.catalog.get(90001).elements)
        self.assertEqual(self.tracker.selected.elements.epoch.date(), newer.date())

    def test_refresh_after_object_left_catalog(self):
        self.tracker.select(25544).result(timeout=TIMEOUT_S)
        self.catalog.replace([])

        self.assertIsNone(self.tracker.refresh())
        self.assertIsNone(self.tracker.selected)
        self.assertIsNone(self.tracker.latest)
        self.assertIsNone(self.tracker.refresh())

    def test_result_for_replaced_catalog_discarded(self):
        gate = GatedPropagator()
        tracker = SelectionTracker(self.catalog, self.updates.append, propagator=gate,
                                   clock=lambda: ISS_EPOCH)
        try:
            in_flight = tracker.select(25544)
            self.assertTrue(gate.entered.wait(TIMEOUT_S))
            _, objects = self.catalog.snapshot()
            self.catalog.replace(objects)
            gate.release.set()

            self.assertIsNone(in_flight.result(timeout=TIMEOUT_S))
            self.assertEqual(self.updates, [])
            update = tracker.refresh().result(timeout=TIMEOUT_S)
            self.assertEqual(update.catalog_id, 25544)
        finally:
            tracker.stop()

    def test_stale_update_discarded(self):
        gate = GatedPropagator()
        tracker = SelectionTracker(self.catalog, self.updates.append, propagator=gate,
                                   clock=lambda: ISS_EPOCH)
        try:
            stale = tracker.select(25544)
            self.assertTrue(gate.entered.wait(TIMEOUT_S))
            fresh = tracker.set_observer(ObserverLocation(51.5, -0.1))
            gate.release.set()

            self.assertIsNone(stale.result(timeout=TIMEOUT_S))
            update = fresh.result(timeout=TIMEOUT_S)
            self.assertIsNotNone(update.passes)
            self.assertEqual(self.updates, [update])
        finally:
            tracker.stop()


if __name__ == "__main__":
    unittest.main()
