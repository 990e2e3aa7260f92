"""
Unit Tests for the Catalog and Ingest Filters

Run with:
    python -m pytest tests/test_catalog.py -v
"""

import unittest
from datetime import timedelta

from config import TrackerConfig
from orbit_tracker.catalog import Catalog, RejectReason, filter_records
from orbit_tracker.exceptions import ChecksumMismatch
from orbit_tracker.models import Category, categorize

from tle_fixtures import (
    DECAYED_LINE1,
    DECAYED_LINE2,
    GEO_EPOCH,
    GEO_LINE1,
    GEO_LINE2,
    ISS_EPOCH,
    ISS_LINE1,
    ISS_LINE2,
    days,
    iss_like_lines,
    iss_record,
    record,
)


class TestFreshnessFilter(unittest.TestCase):
    """Epoch-age filtering against the configured threshold."""

    def setUp(self):
        self.line1, self.line2 = iss_like_lines(90001, epoch=ISS_EPOCH)
        self.records = [record("TEST SAT", self.line1, self.line2)]

    def test_59_days_old_is_retained(self):
        catalog = Catalog()
        report = catalog.ingest(self.records, now=ISS_EPOCH + days(59))
        self.assertEqual(report.usable, 1)
        self.assertEqual(len(catalog), 1)
        self.assertEqual(report.rejected_total, 0)

    def test_61_days_old_is_excluded(self):
        catalog = Catalog()
        report = catalog.ingest(self.records, now=ISS_EPOCH + days(61))
        self.assertEqual(report.usable, 0)
        self.assertEqual(len(catalog), 0)
        self.assertEqual(report.rejected[RejectReason.STALE], 1)

    def test_threshold_is_configurable(self):
        catalog = Catalog(TrackerConfig(max_tle_age_days=30))
        report = catalog.ingest(self.records, now=ISS_EPOCH + days(31))
        self.assertEqual(report.rejected[RejectReason.STALE], 1)


class TestIngestFilters(unittest.TestCase):
    """Structural and propagability filters, counting and de-duplication."""

    def test_rejections_counted_by_reason(self):
        records = [
            record("GEO SAT", GEO_LINE1, GEO_LINE2),
            record("DEAD SAT", DECAYED_LINE1, DECAYED_LINE2),
            record("SHORT SAT", GEO_LINE1[:68], GEO_LINE2, catalog_id=28885),
            record("HALF SAT", GEO_LINE1, None, catalog_id=28886),
        ]
        catalog = Catalog()
        report = catalog.ingest(records, now=GEO_EPOCH)

        self.assertEqual(report.fetched, 4)
        self.assertEqual(report.usable, 1)
        self.assertEqual(report.rejected[RejectReason.MALFORMED], 1)
        self.assertEqual(report.rejected[RejectReason.MISSING_LINES], 1)
        self.assertEqual(report.rejected[RejectReason.UNPROPAGATABLE], 1)
        self.assertEqual(report.summary(), "1 of 4 satellites usable")
        self.assertEqual([obj.catalog_id for obj in catalog], [28884])

    def test_report_serializes(self):
        catalog = Catalog()
        report = catalog.ingest([iss_record()], now=ISS_EPOCH)
        data = report.to_dict()
        self.assertEqual(data["usable"], 1)
        self.assertEqual(data["summary"], "1 of 1 satellites usable")
        self.assertEqual(data["generation"], catalog.generation)

    def test_checksum_mismatch_is_counted_not_rejected(self):
        bad = record("ISS (ZARYA)", ISS_LINE1[:68] + "0", ISS_LINE2)
        with self.assertWarns(ChecksumMismatch):
            objects, report = filter_records([bad], ISS_EPOCH)
        self.assertEqual(len(objects), 1)
        self.assertEqual(report.checksum_warnings, 1)
        self.assertFalse(objects[0].elements.checksum_ok)

    def test_duplicates_keep_freshest_epoch(self):
        older = record("TEST SAT", *iss_like_lines(90001, epoch=ISS_EPOCH))
        newer = record("TEST SAT", *iss_like_lines(90001, epoch=ISS_EPOCH + days(1)))

        for batch in ([older, newer], [newer, older]):
            objects, report = filter_records(batch, ISS_EPOCH + days(2))
            self.assertEqual(len(objects), 1)
            self.assertEqual(report.rejected[RejectReason.DUPLICATE], 1)
            self.assertEqual(objects[0].elements.epoch.date(), (ISS_EPOCH + days(1)).date())

    def test_category_fixed_at_construction(self):
        catalog = Catalog()
        catalog.ingest([
            iss_record(),
            record("STARLINK-1007", *iss_like_lines(44713)),
        ], now=ISS_EPOCH)
        self.assertEqual(catalog.get(25544).category, Category.STATION)
        self.assertEqual(catalog.get(44713).category, Category.STARLINK)

    def test_empty_batch(self):
        catalog = Catalog()
        report = catalog.ingest([], now=ISS_EPOCH)
        self.assertEqual(report.summary(), "0 of 0 satellites usable")
        self.assertEqual(catalog.generation, 1)


class TestCategorize(unittest.TestCase):

    def test_keyword_matches(self):
        self.assertEqual(categorize("ISS (ZARYA)"), Category.STATION)
        self.assertEqual(categorize("CSS (TIANHE)"), Category.STATION)
        self.assertEqual(categorize("starlink-30001"), Category.STARLINK)
        self.assertEqual(categorize("NOAA 19"), Category.WEATHER)
        self.assertEqual(categorize("GOES 16"), Category.WEATHER)
        self.assertEqual(categorize("GPS BIIR-2  (PRN 13)"), Category.NAVIGATION)
        self.assertEqual(categorize("IRIDIUM 106"), Category.COMMUNICATION)

    def test_fallback(self):
        self.assertEqual(categorize("COSMOS 2251 DEB"), Category.OTHER)
        self.assertEqual(categorize(""), Category.OTHER)


class TestCatalogAccess(unittest.TestCase):

    def setUp(self):
        self.catalog = Catalog()
        self.catalog.ingest([
            iss_record(),
            record("NOAA 19", *iss_like_lines(33591)),
            record("Starlink-1007", *iss_like_lines(44713)),
        ], now=ISS_EPOCH)

    def test_get(self):
        self.assertEqual(self.catalog.get(33591).name, "NOAA 19")
        self.assertIsNone(self.catalog.get(1))

    def test_search_is_case_insensitive(self):
        self.assertEqual([o.catalog_id for o in self.catalog.search("zarya")], [25544])
        self.assertEqual([o.catalog_id for o in self.catalog.search("STARLINK")], [44713])
        self.assertEqual(len(self.catalog.search("")), 3)
        self.assertEqual(self.catalog.search("hubble"), [])

    def test_by_category(self):
        grouped = self.catalog.by_category()
        self.assertEqual(set(grouped), set(Category))
        self.assertEqual([o.catalog_id for o in grouped[Category.WEATHER]], [33591])
        self.assertEqual(grouped[Category.NAVIGATION], [])

    def test_replace_bumps_generation(self):
        generation, objects = self.catalog.snapshot()
        new_generation = self.catalog.replace(objects[:1])
        self.assertEqual(new_generation, generation + 1)
        self.assertEqual(len(self.catalog), 1)
        # snapshots already handed out are unaffected
        self.assertEqual(len(objects), 3)

    def test_needs_refresh(self):
        self.assertFalse(self.catalog.needs_refresh(ISS_EPOCH + timedelta(hours=23)))
        self.assertTrue(self.catalog.needs_refresh(ISS_EPOCH + timedelta(hours=25)))
        self.assertTrue(self.catalog.needs_refresh(ISS_EPOCH + timedelta(hours=2), max_hours=1))
        self.assertTrue(Catalog().needs_refresh())


if __name__ == "__main__":
    unittest.main()
