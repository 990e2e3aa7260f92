"""
Background scheduling of the propagation workload.

PositionTicker recomputes positions for the whole catalog on a fixed timer.
Each tick is one batch job on a thread pool; at most one batch is in flight,
a tick that comes due while a batch is running is deferred (coalesced into a
single follow-up batch), and a batch whose catalog generation has been
superseded is discarded instead of published.

SelectionTracker recomputes the ground track and passes for the selected
object on selection change and on its own refresh timer. It works on the
immutable element snapshot of that one object and shares no mutable state
with the ticker.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Tuple

import structlog

from config import TrackerConfig
from orbit_tracker.catalog import Catalog
from orbit_tracker.exceptions import FrameConversionError, InvalidInput, PropagationError
from orbit_tracker.frames import as_utc, subpoint
from orbit_tracker.ground_track import ScanResult, ground_track
from orbit_tracker.models import (
    GroundTrackPoint,
    ObserverLocation,
    Pass,
    PositionSnapshotEntry,
    TrackedObject,
    classify_orbit,
)
from orbit_tracker.passes import next_pass, predict_passes
from orbit_tracker.propagator import Propagator

logger = structlog.get_logger(__name__)

MIN_INTERVAL_MS = 500
MAX_INTERVAL_MS = 5000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class BatchResult:
    """One tick's complete position snapshot."""

    generation: int
    instant: datetime
    entries: Tuple[PositionSnapshotEntry, ...]
    failures: int = 0
    failed_ids: Tuple[int, ...] = ()

    @property
    def count(self) -> int:
        return len(self.entries)


def propagate_batch(objects: Iterable[TrackedObject], instant: datetime,
                    propagator: Optional[Propagator] = None, generation: int = 0) -> BatchResult:
    """
    Propagate every object to one instant.

    A failing object is excluded from the snapshot, counted and logged with
    its elements; it never aborts the batch.
    """
    propagator = propagator or Propagator()
    instant = as_utc(instant)
    entries = []
    failed = []
    for obj in objects:
        try:
            position = subpoint(propagator.propagate(obj.elements, instant))
        except PropagationError as exc:
            failed.append(obj.catalog_id)
            logger.warning("propagation_failed", catalog_id=obj.catalog_id, name=obj.name,
                           reason=exc.reason.value, line1=obj.elements.line1,
                           line2=obj.elements.line2)
            continue
        except FrameConversionError as exc:
            failed.append(obj.catalog_id)
            logger.warning("frame_conversion_failed", catalog_id=obj.catalog_id, name=obj.name,
                           error=str(exc), line1=obj.elements.line1, line2=obj.elements.line2)
            continue
        entries.append(PositionSnapshotEntry(
            catalog_id=obj.catalog_id,
            name=obj.name,
            position=position,
            orbit_class=classify_orbit(position.altitude_km),
            category=obj.category,
        ))
    return BatchResult(
        generation=generation,
        instant=instant,
        entries=tuple(entries),
        failures=len(failed),
        failed_ids=tuple(failed),
    )


class _Timer:
    """Daemon thread calling ``action`` every ``interval_s`` until stopped."""

    def __init__(self, name: str, interval_s: float, action: Callable[[], object]):
        self.name = name
        self.interval_s = interval_s
        self.action = action
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_s):
            self.action()


class PositionTicker:
    """
    Periodic whole-catalog position batches.

    Args:
        catalog: Source of (generation, objects) snapshots
        on_snapshot: Called with each published BatchResult, from a worker thread
        interval_ms: Tick interval, 500-5000 ms
        executor: Thread pool for batches (a private single-worker pool if omitted)
        propagator: Shared propagator
        clock: Returns the instant to propagate to on each tick
    """

    def __init__(self, catalog: Catalog, on_snapshot: Callable[[BatchResult], None],
                 interval_ms: int = 1000, executor: Optional[ThreadPoolExecutor] = None,
                 propagator: Optional[Propagator] = None,
                 clock: Callable[[], datetime] = _utcnow):
        if not MIN_INTERVAL_MS <= interval_ms <= MAX_INTERVAL_MS:
            raise InvalidInput(
                f"update interval {interval_ms} ms outside [{MIN_INTERVAL_MS}, {MAX_INTERVAL_MS}]"
            )
        self.catalog = catalog
        self.on_snapshot = on_snapshot
        self.interval_ms = interval_ms
        self.propagator = propagator or catalog.propagator
        self.clock = clock
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="position-batch")
        self._lock = threading.Lock()
        self._busy = False
        self._pending = False
        self._stopped = False
        self._timer = _Timer("position-ticker", interval_ms / 1000.0, self.tick_now)

        self.latest: Optional[BatchResult] = None
        self.published = 0
        self.deferred = 0
        self.discarded = 0

    def start(self) -> None:
        self._stopped = False
        self._timer.start()
        logger.info("position_ticker_started", interval_ms=self.interval_ms)

    def stop(self, wait: bool = True) -> None:
        self._stopped = True
        self._timer.stop()
        if self._owns_executor:
            self.executor.shutdown(wait=wait)
        logger.info("position_ticker_stopped", published=self.published,
                    deferred=self.deferred, discarded=self.discarded)

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    def tick_now(self) -> Optional[Future]:
        """
        Launch a batch unless one is in flight.

        Returns:
            Future of the launched batch, or None if the tick was deferred
        """
        with self._lock:
            if self._stopped:
                return None
            if self._busy:
                self._pending = True
                self.deferred += 1
                logger.debug("position_tick_deferred", deferred=self.deferred)
                return None
            self._busy = True
            generation, objects = self.catalog.snapshot()
        instant = self.clock()
        try:
            return self.executor.submit(self._run_batch, generation, objects, instant)
        except RuntimeError:
            # executor shut down between ticks
            with self._lock:
                self._busy = False
            return None

    def _run_batch(self, generation: int, objects: Tuple[TrackedObject, ...],
                   instant: datetime) -> Optional[BatchResult]:
        try:
            result = propagate_batch(objects, instant, self.propagator, generation)
            return self._publish(result)
        finally:
            with self._lock:
                self._busy = False
                follow_up = self._pending and not self._stopped
                self._pending = False
            if follow_up:
                self.tick_now()

    def _publish(self, result: BatchResult) -> Optional[BatchResult]:
        if result.generation != self.catalog.generation:
            self.discarded += 1
            logger.info("position_batch_discarded", generation=result.generation,
                        current_generation=self.catalog.generation)
            return None
        self.latest = result
        self.published += 1
        if result.failures:
            logger.info("position_batch_partial", positions=result.count,
                        failures=result.failures)
        try:
            self.on_snapshot(result)
        except Exception:
            logger.exception("snapshot_consumer_failed", generation=result.generation)
        return result


@dataclass(frozen=True)
class SelectionUpdate:
    """Ground track and passes recomputed for the selected object."""

    catalog_id: int
    computed_at: datetime
    ground_track: ScanResult[GroundTrackPoint]
    passes: Optional[ScanResult[Pass]] = None
    next_pass: Optional[Pass] = None


class SelectionTracker:
    """
    Keeps the selected object's ground track and passes current.

    Passes are computed only while an observer location is set.
    """

    def __init__(self, catalog: Catalog, on_update: Callable[[SelectionUpdate], None],
                 config: Optional[TrackerConfig] = None,
                 executor: Optional[ThreadPoolExecutor] = None,
                 propagator: Optional[Propagator] = None,
                 clock: Callable[[], datetime] = _utcnow):
        self.catalog = catalog
        self.on_update = on_update
        self.config = config or catalog.config
        self.propagator = propagator or catalog.propagator
        self.clock = clock
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="selection")
        self._lock = threading.Lock()
        self._selected_id: Optional[int] = None
        self._selected: Optional[TrackedObject] = None
        self._generation: Optional[int] = None
        self._observer: Optional[ObserverLocation] = None
        self._token = 0
        self._timer = _Timer("selection-refresh", self.config.selection_refresh_s, self.refresh)
        self.latest: Optional[SelectionUpdate] = None

    @property
    def selected(self) -> Optional[TrackedObject]:
        return self._selected

    def select(self, catalog_id: Optional[int]) -> Optional[Future]:
        """Change the selection and recompute; None clears it."""
        generation, obj = (self.catalog.get_with_generation(catalog_id)
                           if catalog_id is not None else (None, None))
        if catalog_id is not None and obj is None:
            logger.warning("selection_not_in_catalog", catalog_id=catalog_id)
        with self._lock:
            self._selected_id = obj.catalog_id if obj is not None else None
            self._selected = obj
            self._generation = generation
            self._token += 1
            if obj is None:
                self.latest = None
        return self.refresh()

    def set_observer(self, observer: Optional[ObserverLocation]) -> Optional[Future]:
        with self._lock:
            self._observer = observer
            self._token += 1
        return self.refresh()

    def refresh(self) -> Optional[Future]:
        """
        Recompute for the current selection.

        When the catalog has been replaced since the last refresh the selected
        object is read again, so a fresher element set takes over; an object
        no longer in the catalog clears the selection.
        """
        with self._lock:
            catalog_id = self._selected_id
            if catalog_id is None:
                return None
            generation, current = self.catalog.get_with_generation(catalog_id)
            if generation != self._generation:
                self._generation = generation
                self._selected = current
                self._token += 1
                if current is None:
                    self._selected_id = None
                    self.latest = None
                    logger.info("selection_left_catalog", catalog_id=catalog_id,
                                generation=generation)
                    return None
            obj, observer, token = self._selected, self._observer, self._token
        try:
            return self.executor.submit(self._compute, obj, observer, token, generation,
                                        self.clock())
        except RuntimeError:
            return None

    def start(self) -> None:
        self._timer.start()

    def stop(self, wait: bool = True) -> None:
        self._timer.stop()
        if self._owns_executor:
            self.executor.shutdown(wait=wait)

    def _compute(self, obj: TrackedObject, observer: Optional[ObserverLocation], token: int,
                 generation: int, now: datetime) -> Optional[SelectionUpdate]:
        track = ground_track(obj.elements, now, self.config.ground_track_minutes,
                             self.config.ground_track_step_minutes, self.propagator,
                             self.config.stale_warning_days)
        passes = upcoming = None
        if observer is not None:
            passes = predict_passes(obj.elements, observer.latitude_deg, observer.longitude_deg,
                                    now, self.config.pass_horizon_hours,
                                    self.config.min_elevation_deg, observer.altitude_m,
                                    self.propagator)
            upcoming = next_pass(passes, now)

        update = SelectionUpdate(catalog_id=obj.catalog_id, computed_at=now,
                                 ground_track=track, passes=passes, next_pass=upcoming)
        with self._lock:
            if token != self._token or generation != self.catalog.generation:
                logger.debug("selection_update_discarded", catalog_id=obj.catalog_id,
                             generation=generation)
                return None
            self.latest = update
        try:
            self.on_update(update)
        except Exception:
            logger.exception("selection_consumer_failed", catalog_id=obj.catalog_id)
        return update
