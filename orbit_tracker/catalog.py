"""
Tracked-object catalog and ingest filtering.

Raw records pass three filters before they become TrackedObjects:

1. structural: both TLE lines present, 69 characters, and decodable
2. freshness: epoch no more than ``max_tle_age_days`` before "now"
3. propagability: one trial propagation at "now" succeeds

Every rejection is counted by reason so the host can report how many of the
fetched records were usable. The catalog is replaced as a whole; each
replacement bumps a generation counter that in-flight batch jobs compare
against before publishing their results.
"""

import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import structlog

from config import TrackerConfig
from orbit_tracker.exceptions import MalformedElementSet, PropagationError
from orbit_tracker.models import Category, OrbitalElementSet, TrackedObject, categorize
from orbit_tracker.propagator import Propagator
from orbit_tracker.sources import SatelliteRecord
from orbit_tracker.tle_parser import TLE_LINE_LENGTH, parse_tle

logger = structlog.get_logger(__name__)


class RejectReason(str, Enum):
    MISSING_LINES = "missing-lines"
    MALFORMED = "malformed"
    STALE = "stale"
    UNPROPAGATABLE = "unpropagatable"
    DUPLICATE = "duplicate"


@dataclass
class IngestReport:
    """Outcome of one ingest: how many records came in and why the rest were dropped."""

    fetched: int = 0
    usable: int = 0
    rejected: Counter = field(default_factory=Counter)
    checksum_warnings: int = 0
    generation: Optional[int] = None

    @property
    def rejected_total(self) -> int:
        return sum(self.rejected.values())

    def reject(self, reason: RejectReason) -> None:
        self.rejected[reason] += 1

    def summary(self) -> str:
        return f"{self.usable} of {self.fetched} satellites usable"

    def to_dict(self) -> dict:
        return {
            "fetched": self.fetched,
            "usable": self.usable,
            "rejected": {reason.value: count for reason, count in self.rejected.items()},
            "checksum_warnings": self.checksum_warnings,
            "generation": self.generation,
            "summary": self.summary(),
        }


def build_tracked_object(record: SatelliteRecord,
                         elements: Optional[OrbitalElementSet] = None) -> TrackedObject:
    """Bind a record to its parsed elements; the category is fixed here."""
    if elements is None:
        elements = parse_tle(record.tle_line1, record.tle_line2)
    return TrackedObject(
        catalog_id=record.catalog_id,
        name=record.name,
        object_type=record.object_type,
        category=categorize(record.name),
        elements=elements,
    )


def filter_records(records: Iterable[SatelliteRecord], now: datetime, max_age_days: float = 60.0,
                   propagator: Optional[Propagator] = None) -> Tuple[List[TrackedObject], IngestReport]:
    """
    Apply the structural, freshness and propagability filters.

    Args:
        records: Raw records from a data source
        now: Reference instant for the age and trial-propagation checks
        max_age_days: Oldest acceptable epoch age
        propagator: Propagator for the trial propagation

    Returns:
        Tuple of (usable objects ordered by catalog id, report). When two
        records share a catalog number the one with the later epoch wins.
    """
    propagator = propagator or Propagator()
    report = IngestReport()
    kept: Dict[int, TrackedObject] = {}

    for record in records:
        report.fetched += 1
        line1, line2 = record.tle_line1, record.tle_line2
        if not line1 or not line2:
            report.reject(RejectReason.MISSING_LINES)
            logger.debug("record_rejected", catalog_id=record.catalog_id,
                         reason=RejectReason.MISSING_LINES.value)
            continue
        if len(line1.rstrip("\r\n")) != TLE_LINE_LENGTH or len(line2.rstrip("\r\n")) != TLE_LINE_LENGTH:
            report.reject(RejectReason.MALFORMED)
            logger.debug("record_rejected", catalog_id=record.catalog_id,
                         reason=RejectReason.MALFORMED.value)
            continue
        try:
            elements = parse_tle(line1, line2)
        except MalformedElementSet as exc:
            report.reject(RejectReason.MALFORMED)
            logger.debug("record_rejected", catalog_id=record.catalog_id,
                         reason=RejectReason.MALFORMED.value, error=str(exc))
            continue
        if not elements.checksum_ok:
            report.checksum_warnings += 1

        age = elements.age_days(now)
        if age > max_age_days:
            report.reject(RejectReason.STALE)
            logger.debug("record_rejected", catalog_id=record.catalog_id,
                         reason=RejectReason.STALE.value, age_days=round(age, 1))
            continue

        try:
            propagator.propagate(elements, now)
        except PropagationError as exc:
            report.reject(RejectReason.UNPROPAGATABLE)
            logger.warning("trial_propagation_failed", catalog_id=record.catalog_id,
                           name=record.name, reason=exc.reason.value,
                           line1=elements.line1, line2=elements.line2)
            continue

        obj = build_tracked_object(record, elements)
        previous = kept.get(obj.catalog_id)
        if previous is not None:
            report.reject(RejectReason.DUPLICATE)
            if previous.elements.epoch >= obj.elements.epoch:
                continue
        kept[obj.catalog_id] = obj

    objects = sorted(kept.values(), key=lambda o: o.catalog_id)
    report.usable = len(objects)
    return objects, report


class Catalog:
    """
    The current set of tracked objects.

    Readers take an immutable snapshot; writers replace the whole set under
    a lock and bump ``generation``.
    """

    def __init__(self, config: Optional[TrackerConfig] = None,
                 propagator: Optional[Propagator] = None):
        self.config = config or TrackerConfig()
        self.propagator = propagator or Propagator()
        self._lock = threading.Lock()
        self._objects: Tuple[TrackedObject, ...] = ()
        self._index: Dict[int, TrackedObject] = {}
        self._generation = 0
        self._last_updated: Optional[datetime] = None
        self.last_report: Optional[IngestReport] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._last_updated

    def snapshot(self) -> Tuple[int, Tuple[TrackedObject, ...]]:
        """Current (generation, objects) pair, read atomically."""
        with self._lock:
            return self._generation, self._objects

    def ingest(self, records: Iterable[SatelliteRecord], now: Optional[datetime] = None) -> IngestReport:
        """
        Filter a fetched batch and make it the current catalog.

        Args:
            records: Raw records from a data source
            now: Reference instant (defaults to the current UTC time)

        Returns:
            IngestReport with counts per rejection reason and the new generation
        """
        now = now or datetime.now(timezone.utc)
        objects, report = filter_records(records, now, self.config.max_tle_age_days,
                                         self.propagator)
        report.generation = self.replace(objects, now)
        self.last_report = report

        logger.info("catalog_ingested", summary=report.summary(), fetched=report.fetched,
                    usable=report.usable,
                    rejected={r.value: n for r, n in report.rejected.items()},
                    generation=report.generation)
        if report.fetched and not report.usable:
            logger.warning("catalog_empty_after_filtering", fetched=report.fetched)
        return report

    def replace(self, objects: Iterable[TrackedObject], now: Optional[datetime] = None) -> int:
        """Swap in a new object set; returns the new generation."""
        objects = tuple(objects)
        index = {obj.catalog_id: obj for obj in objects}
        with self._lock:
            self._objects = objects
            self._index = index
            self._generation += 1
            self._last_updated = now or datetime.now(timezone.utc)
            return self._generation

    def get(self, catalog_id: int) -> Optional[TrackedObject]:
        with self._lock:
            return self._index.get(catalog_id)

    def get_with_generation(self, catalog_id: int) -> Tuple[int, Optional[TrackedObject]]:
        """(generation, object) read atomically; the object is None if not present."""
        with self._lock:
            return self._generation, self._index.get(catalog_id)

    def search(self, term: str) -> List[TrackedObject]:
        """Objects whose name contains ``term`` (case-insensitive); all objects for an empty term."""
        _, objects = self.snapshot()
        term = (term or "").strip().lower()
        if not term:
            return list(objects)
        return [obj for obj in objects if term in obj.name.lower()]

    def by_category(self) -> Dict[Category, List[TrackedObject]]:
        _, objects = self.snapshot()
        grouped: Dict[Category, List[TrackedObject]] = {category: [] for category in Category}
        for obj in objects:
            grouped[obj.category].append(obj)
        return grouped

    def needs_refresh(self, now: Optional[datetime] = None, max_hours: Optional[float] = None) -> bool:
        """True when the catalog was never loaded or is older than ``max_hours``."""
        if self._last_updated is None:
            return True
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        max_hours = self.config.refresh_after_hours if max_hours is None else max_hours
        return now - self._last_updated > timedelta(hours=max_hours)

    def __len__(self) -> int:
        return len(self._objects)

    def __iter__(self) -> Iterator[TrackedObject]:
        return iter(self.snapshot()[1])
